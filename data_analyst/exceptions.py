"""
Exception types raised by the data analyst core.

Handler-level failures never surface as these exceptions to the caller:
they are converted to textual capability results and handed back to the
invoking model. Only turn-level failures escape ``handle``.
"""


class AnalystError(Exception):
    """Base class for data analyst errors."""


class UnsupportedChartKindError(AnalystError, ValueError):
    """Requested visualization kind is not in the supported set."""


class ToolLoopLimitExceeded(AnalystError):
    """An agent kept requesting capabilities past its round limit."""


class UpstreamModelError(AnalystError):
    """The top-level model round trip failed (transport, auth, provider)."""
