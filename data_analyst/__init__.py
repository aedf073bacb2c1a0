"""
Data analyst agent service.

Answers natural-language questions about a read-only database by
delegating to a SQL sub-agent and a visualization sub-agent.
"""

__version__ = "1.0.0"
