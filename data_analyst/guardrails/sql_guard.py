"""
Lexical guardrail for model-generated SQL.

This is a deliberately conservative check, not a parser. It accepts false
positives as the cost of simplicity: a query selecting a column named
``created_date`` or ``last_update`` is rejected because the forbidden
word appears inside the identifier. Such queries are not special-cased.
"""

from typing import Iterable, Tuple
import logging

from data_analyst.guardrails.models import GuardVerdict

logger = logging.getLogger(__name__)


FORBIDDEN_KEYWORDS: Tuple[str, ...] = ("insert", "update", "delete", "drop", "alter", "create")

NOT_SELECT_REASON = "Only SELECT queries are allowed"
FORBIDDEN_REASON = "Query contains forbidden operations"


class SQLGuard:
    """
    Reject anything that is not a plain read-only SELECT.

    Checks (in order, short-circuit on first failure):
    1. The trimmed, lowercased statement must begin with ``select``
    2. None of the forbidden substrings may occur anywhere in the text
    """

    def __init__(self, forbidden_keywords: Iterable[str] = FORBIDDEN_KEYWORDS):
        self.forbidden_keywords = tuple(k.lower() for k in forbidden_keywords)

    @staticmethod
    def normalize(query: str) -> str:
        return query.strip().lower()

    def check(self, query: str) -> GuardVerdict:
        """
        Validate a query before execution.

        Args:
            query: SQL text produced by the model

        Returns:
            GuardVerdict; ``is_safe`` is False when the query must not run
        """
        normalized = self.normalize(query or "")

        if not normalized.startswith("select"):
            logger.warning(f"Rejected non-SELECT query: {normalized[:80]}")
            return GuardVerdict.reject(NOT_SELECT_REASON)

        for keyword in self.forbidden_keywords:
            if keyword in normalized:
                logger.warning(f"Rejected query containing '{keyword}': {normalized[:80]}")
                return GuardVerdict.reject(FORBIDDEN_REASON, matched_keyword=keyword)

        return GuardVerdict.allow()
