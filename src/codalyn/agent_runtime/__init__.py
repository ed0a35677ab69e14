"""
Agent Runtime Layer for Codalyn.

This module provides the core of the AI project builder: an agent loop that
drives a language model through bounded tool calling against a sandboxed
project workspace.

Key Components:
- Agent Engine: Bounded generate/dispatch loop with blocking and streaming runs
- Model Providers: OpenRouter and Gemini adapters behind one interface
- Sandboxes: Mock, Docker container and browser-hosted execution backends
- Tool Framework: Fixed registry of sandbox tools with validated arguments
- Services: Conversation memory, content segmentation, persistence and sessions
"""

__version__ = "0.1.0"
