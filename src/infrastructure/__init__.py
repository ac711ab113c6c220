"""
Infrastructure layer - pure plumbing (audit DB, LLM, config, tracing).

No routing logic here. Just connections, clients, and configuration loading.
"""

from .observability import observe, flush, get_langfuse

__all__ = [
    "observe",
    "flush",
    "get_langfuse",
]
