"""
Writegy Backend - Identity Verification Tests
===============================================

What we test:
    ✅ Valid HS256 tokens yield email, name and subject
    ✅ Expired, wrongly signed and wrong-audience tokens are rejected (401)
    ✅ Unreachable JWKS endpoint maps to IdentityProviderError (503)
    ✅ Name resolution from provider metadata
"""

from unittest.mock import MagicMock

import pytest
from jwt.exceptions import PyJWKClientConnectionError, PyJWKClientError

from app.exceptions import IdentityProviderError, UnauthorizedError
from app.services.identity_service import IdentityVerifier, claims_from_payload

from conftest import TEST_AUDIENCE, TEST_JWT_SECRET, make_token


class TestClaimsFromPayload:

    def test_full_name_from_user_metadata(self):
        claims = claims_from_payload(
            {
                "sub": "abc",
                "email": "jane@example.com",
                "user_metadata": {"full_name": "Jane Doe", "email_verified": True},
            }
        )
        assert claims.name == "Jane Doe"
        assert claims.subject == "abc"
        assert claims.email_verified is True

    def test_top_level_name_fallback(self):
        claims = claims_from_payload({"email": "a@b.co", "name": "Ann"})
        assert claims.name == "Ann"
        assert claims.email_verified is False

    def test_no_name(self):
        assert claims_from_payload({"email": "a@b.co"}).name is None


class TestIdentityVerifier:

    @pytest.mark.asyncio
    async def test_valid_token(self, identity_verifier):
        token = make_token(email="jane@example.com", sub="sub-42", full_name="Jane")

        claims = await identity_verifier.verify(token)

        assert claims.email == "jane@example.com"
        assert claims.subject == "sub-42"
        assert claims.name == "Jane"

    @pytest.mark.asyncio
    async def test_expired_token_is_unauthorized(self, identity_verifier):
        token = make_token(expires_in=-60)

        with pytest.raises(UnauthorizedError):
            await identity_verifier.verify(token)

    @pytest.mark.asyncio
    async def test_bad_signature_is_unauthorized(self, identity_verifier):
        token = make_token(secret="another-secret-that-is-also-long-enough")

        with pytest.raises(UnauthorizedError):
            await identity_verifier.verify(token)

    @pytest.mark.asyncio
    async def test_wrong_audience_is_unauthorized(self, identity_verifier):
        token = make_token(audience="someone-else")

        with pytest.raises(UnauthorizedError):
            await identity_verifier.verify(token)

    @pytest.mark.asyncio
    async def test_garbage_is_unauthorized(self, identity_verifier):
        with pytest.raises(UnauthorizedError):
            await identity_verifier.verify("not-a-jwt")

    @pytest.mark.asyncio
    async def test_audience_check_can_be_disabled(self):
        verifier = IdentityVerifier(jwt_secret=TEST_JWT_SECRET, jwks_url="", audience="")
        token = make_token(audience="anything")

        claims = await verifier.verify(token)

        assert claims.email == "jane@example.com"

    @pytest.mark.asyncio
    async def test_unconfigured_verifier(self):
        verifier = IdentityVerifier(jwt_secret="", jwks_url="", audience=TEST_AUDIENCE)

        with pytest.raises(IdentityProviderError):
            await verifier.verify(make_token())

    @pytest.mark.asyncio
    async def test_jwks_unreachable_is_provider_error(self):
        jwks_client = MagicMock()
        jwks_client.get_signing_key_from_jwt.side_effect = PyJWKClientConnectionError("timed out")
        verifier = IdentityVerifier(
            jwt_secret="",
            jwks_url="https://id.test/jwks.json",
            audience=TEST_AUDIENCE,
            jwks_client=jwks_client,
        )

        with pytest.raises(IdentityProviderError):
            await verifier.verify(make_token())

    @pytest.mark.asyncio
    async def test_unknown_signing_key_is_unauthorized(self):
        jwks_client = MagicMock()
        jwks_client.get_signing_key_from_jwt.side_effect = PyJWKClientError("no matching key")
        verifier = IdentityVerifier(
            jwt_secret="",
            jwks_url="https://id.test/jwks.json",
            audience=TEST_AUDIENCE,
            jwks_client=jwks_client,
        )

        with pytest.raises(UnauthorizedError):
            await verifier.verify(make_token())
