"""
Guardrails for model-generated queries.

This module provides:
- SQLGuard: lexical read-only check for generated SQL
- GuardVerdict: result of a guardrail check
"""

from data_analyst.guardrails.models import GuardVerdict
from data_analyst.guardrails.sql_guard import SQLGuard, FORBIDDEN_KEYWORDS

__all__ = [
    'SQLGuard',
    'GuardVerdict',
    'FORBIDDEN_KEYWORDS'
]
