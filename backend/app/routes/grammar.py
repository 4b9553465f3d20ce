"""
Writegy Backend - Grammar Route Handler
=========================================

What:  POST /api/grammar/check.
How:   Delegates to GrammarService. The endpoint never fails because the AI
       endpoint is down; callers get the heuristic advisory instead and can
       tell the two apart by `source`.

Rate limiting for this path is applied by RateLimitMiddleware.
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_grammar_service
from app.schemas.common import ErrorResponse
from app.schemas.grammar import GrammarCheckRequest, GrammarCheckResponse
from app.services.grammar_service import GrammarService

router = APIRouter(prefix="/api/grammar", tags=["Grammar"])


@router.post(
    "/check",
    response_model=GrammarCheckResponse,
    responses={
        429: {"description": "Rate limit exceeded", "model": ErrorResponse},
    },
    summary="Check text for grammar and spelling problems",
)
async def check_grammar(
    body: GrammarCheckRequest,
    service: GrammarService = Depends(get_grammar_service),
) -> GrammarCheckResponse:
    outcome = await service.check(body.text)
    return GrammarCheckResponse(
        result=outcome.result,
        source=outcome.source,
        cached=outcome.cached,
    )
