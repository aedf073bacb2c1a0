"""
Capabilities bound to the sub-agents.

- database_tools: guarded read-only SQL execution
- chart_tools: chart/table card generation
"""
