"""
Writegy Backend - Grammar Check Schemas
=========================================

What:  Request and response bodies for POST /api/grammar/check.

The `result` field is opaque text. When `source` is "ai" it is the model's
raw reply, expected (but not guaranteed) to be a JSON object of the form
{"corrected": str, "suggestions": [{original, replacement, explanation}]}.
When `source` is "heuristic" it is the basic checker's advisory string.
"""

from typing import Literal

from pydantic import BaseModel, Field


class GrammarCheckRequest(BaseModel):
    text: str = Field(description="Text to check; blank text gets the basic check")


class GrammarCheckResponse(BaseModel):
    result: str = Field(description="AI reply or heuristic advisory text")
    source: Literal["ai", "heuristic"] = Field(description="Which checker produced the result")
    cached: bool = Field(default=False, description="Served from the in-process cache")
