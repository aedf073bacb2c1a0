"""
Data models for query guardrails.
"""

from typing import Optional
from pydantic import BaseModel, Field


class GuardVerdict(BaseModel):
    """Outcome of a guardrail check on a generated query."""
    is_safe: bool = Field(..., description="Whether the query may be executed")
    reason: Optional[str] = Field(None, description="Why the query was rejected")
    matched_keyword: Optional[str] = Field(None, description="Forbidden keyword that triggered rejection")

    @classmethod
    def allow(cls) -> "GuardVerdict":
        return cls(is_safe=True)

    @classmethod
    def reject(cls, reason: str, matched_keyword: Optional[str] = None) -> "GuardVerdict":
        return cls(is_safe=False, reason=reason, matched_keyword=matched_keyword)
