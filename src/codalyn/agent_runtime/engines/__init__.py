"""Agent orchestration engine."""

from .agent_engine import Agent, create_agent
from .prompts import DEFAULT_SYSTEM_PROMPT, build_system_prompt

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "Agent",
    "build_system_prompt",
    "create_agent",
]
