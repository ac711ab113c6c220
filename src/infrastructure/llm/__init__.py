"""
LLM provider wrappers.

  get_handler_llm()          → chat model for handler responses
  LangChainTextGenerator     → adapts it to the router's TextGenerator protocol
"""

from .llm_provider import LangChainTextGenerator, get_handler_llm

__all__ = [
    "LangChainTextGenerator",
    "get_handler_llm",
]
