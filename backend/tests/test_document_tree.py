"""
Writegy Backend - Document Hierarchy Tests
============================================

What we test:
    ✅ Re-parenting sets parent and depth, cascading to descendants
    ✅ Moves that would create a cycle are rejected and change nothing
    ✅ Corrupt ancestor chains terminate with a rejection
    ✅ Depth limit is enforced before anything is modified
    ✅ Children and tree listings are ordered
    ✅ Documents of other users are invisible
"""

import uuid

import pytest

from app.exceptions import CircularReferenceError, NotFoundError, ValidationError
from app.models.document import Document
from app.services.document_tree import DocumentTreeManager


async def make_doc(db, owner, title, tree_order=0, content=""):
    document = Document(title=title, content=content, owner_id=owner.id, tree_order=tree_order)
    db.add(document)
    await db.flush()
    return document


@pytest.fixture
def tree():
    return DocumentTreeManager(max_depth=32)


class TestSetParent:

    @pytest.mark.asyncio
    async def test_child_gets_parent_depth_plus_one(self, db_session, owner, tree):
        parent = await make_doc(db_session, owner, "Parent")
        child = await make_doc(db_session, owner, "Child")

        moved = await tree.set_parent(db_session, owner.id, child.id, parent.id)

        assert moved.parent_id == parent.id
        assert moved.depth == 1

    @pytest.mark.asyncio
    async def test_move_cascades_depth_to_descendants(self, db_session, owner, tree):
        root = await make_doc(db_session, owner, "Root")
        a = await make_doc(db_session, owner, "A")
        b = await make_doc(db_session, owner, "B")
        c = await make_doc(db_session, owner, "C")
        await tree.set_parent(db_session, owner.id, b.id, a.id)
        await tree.set_parent(db_session, owner.id, c.id, b.id)
        assert (a.depth, b.depth, c.depth) == (0, 1, 2)

        await tree.set_parent(db_session, owner.id, a.id, root.id)

        assert (a.depth, b.depth, c.depth) == (1, 2, 3)

    @pytest.mark.asyncio
    async def test_moving_root_under_its_child_is_rejected(self, db_session, owner, tree):
        d1 = await make_doc(db_session, owner, "D1")
        d2 = await make_doc(db_session, owner, "D2")
        await tree.set_parent(db_session, owner.id, d2.id, d1.id)

        with pytest.raises(CircularReferenceError):
            await tree.set_parent(db_session, owner.id, d1.id, d2.id)

        assert d1.parent_id is None
        assert d1.depth == 0
        assert d2.parent_id == d1.id
        assert d2.depth == 1

    @pytest.mark.asyncio
    async def test_moving_under_grandchild_is_rejected(self, db_session, owner, tree):
        a = await make_doc(db_session, owner, "A")
        b = await make_doc(db_session, owner, "B")
        c = await make_doc(db_session, owner, "C")
        await tree.set_parent(db_session, owner.id, b.id, a.id)
        await tree.set_parent(db_session, owner.id, c.id, b.id)

        with pytest.raises(CircularReferenceError):
            await tree.set_parent(db_session, owner.id, a.id, c.id)

    @pytest.mark.asyncio
    async def test_self_parent_is_rejected(self, db_session, owner, tree):
        document = await make_doc(db_session, owner, "Alone")

        with pytest.raises(CircularReferenceError):
            await tree.set_parent(db_session, owner.id, document.id, document.id)
        assert document.parent_id is None

    @pytest.mark.asyncio
    async def test_corrupt_ancestor_chain_terminates(self, db_session, owner, tree):
        x = await make_doc(db_session, owner, "X")
        y = await make_doc(db_session, owner, "Y")
        z = await make_doc(db_session, owner, "Z")
        # A cycle that bypassed the service
        x.parent_id = y.id
        y.parent_id = x.id
        await db_session.flush()

        with pytest.raises(CircularReferenceError) as exc_info:
            await tree.set_parent(db_session, owner.id, z.id, x.id)
        assert exc_info.value.context["reason"] == "ancestor_chain_unbounded"
        assert z.parent_id is None

    @pytest.mark.asyncio
    async def test_depth_limit_checked_before_mutation(self, db_session, owner):
        shallow = DocumentTreeManager(max_depth=2)
        a = await make_doc(db_session, owner, "A")
        b = await make_doc(db_session, owner, "B")
        c = await make_doc(db_session, owner, "C")
        new_root = await make_doc(db_session, owner, "New root")
        await shallow.set_parent(db_session, owner.id, b.id, a.id)
        await shallow.set_parent(db_session, owner.id, c.id, b.id)

        with pytest.raises(ValidationError) as exc_info:
            await shallow.set_parent(db_session, owner.id, a.id, new_root.id)

        assert exc_info.value.field == "parentId"
        assert a.parent_id is None
        assert (a.depth, b.depth, c.depth) == (0, 1, 2)

    @pytest.mark.asyncio
    async def test_missing_parent_is_not_found(self, db_session, owner, tree):
        document = await make_doc(db_session, owner, "Doc")

        with pytest.raises(NotFoundError):
            await tree.set_parent(db_session, owner.id, document.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_other_users_parent_is_not_found(self, db_session, owner, other_user, tree):
        mine = await make_doc(db_session, owner, "Mine")
        theirs = await make_doc(db_session, other_user, "Theirs")

        with pytest.raises(NotFoundError):
            await tree.set_parent(db_session, owner.id, mine.id, theirs.id)
        assert mine.parent_id is None


class TestRemoveParent:

    @pytest.mark.asyncio
    async def test_becomes_root_and_subtree_moves_up(self, db_session, owner, tree):
        a = await make_doc(db_session, owner, "A")
        b = await make_doc(db_session, owner, "B")
        c = await make_doc(db_session, owner, "C")
        await tree.set_parent(db_session, owner.id, b.id, a.id)
        await tree.set_parent(db_session, owner.id, c.id, b.id)

        await tree.remove_parent(db_session, owner.id, b.id)

        assert b.parent_id is None
        assert b.depth == 0
        assert c.parent_id == b.id
        assert c.depth == 1

    @pytest.mark.asyncio
    async def test_root_stays_root(self, db_session, owner, tree):
        a = await make_doc(db_session, owner, "A")

        result = await tree.remove_parent(db_session, owner.id, a.id)

        assert result.parent_id is None
        assert result.depth == 0


class TestListings:

    @pytest.mark.asyncio
    async def test_children_ordered_by_tree_order(self, db_session, owner, tree):
        parent = await make_doc(db_session, owner, "Parent")
        second = await make_doc(db_session, owner, "Second", tree_order=2)
        first = await make_doc(db_session, owner, "First", tree_order=1)
        await tree.set_parent(db_session, owner.id, second.id, parent.id)
        await tree.set_parent(db_session, owner.id, first.id, parent.id)

        children = await tree.list_children(db_session, owner.id, parent.id)

        assert [c.title for c in children] == ["First", "Second"]

    @pytest.mark.asyncio
    async def test_children_of_missing_parent_is_not_found(self, db_session, owner, tree):
        with pytest.raises(NotFoundError):
            await tree.list_children(db_session, owner.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_tree_is_level_order(self, db_session, owner, other_user, tree):
        root_b = await make_doc(db_session, owner, "Root B", tree_order=1)
        root_a = await make_doc(db_session, owner, "Root A", tree_order=0)
        child = await make_doc(db_session, owner, "Child")
        grandchild = await make_doc(db_session, owner, "Grandchild")
        await make_doc(db_session, other_user, "Not mine")
        await tree.set_parent(db_session, owner.id, child.id, root_b.id)
        await tree.set_parent(db_session, owner.id, grandchild.id, child.id)

        documents = await tree.list_tree(db_session, owner.id)

        assert [d.title for d in documents] == ["Root A", "Root B", "Child", "Grandchild"]
        assert [d.depth for d in documents] == [0, 0, 1, 2]
        assert root_a.id == documents[0].id
