"""
Agent framework package for multi-agent orchestration.

This package contains:
- Base agent with a closed capability registry and tool-calling loop
- Sub-agent wrapper exposing an agent as a single capability
- Conversation state and the conversation store
- Root orchestrator driving one request/response cycle
"""
