"""
Tracing for the router - LangFuse v3.

Spans are opened with ``@observe`` on ``route``, ``delegate_task`` and
every handler execution; the routing confidence is attached to the trace
as a score. Handler prompts can be managed in LangFuse and fall back to
the local templates in ``agent_router.prompts``.

Switches:
    config/param.yaml   observability.enabled
    env                 OBSERVABILITY_ENABLED (wins over the YAML flag)
    env                 LANGFUSE_SECRET_KEY, LANGFUSE_PUBLIC_KEY,
                        LANGFUSE_BASE_URL

When tracing is off, ``observe`` returns the function untouched and every
helper here returns immediately.
"""

import os
from typing import Any, Dict, Optional

from langfuse import Langfuse
from langfuse import get_client as _get_lf_client
from langfuse import observe as _lf_observe
from loguru import logger

_DEFAULT_HOST = "https://us.cloud.langfuse.com"

_enabled: Optional[bool] = None
_client: Optional[Langfuse] = None
_client_checked = False


def _is_enabled() -> bool:
    global _enabled
    if _enabled is None:
        from infrastructure.config import OBSERVABILITY_ENABLED

        _enabled = OBSERVABILITY_ENABLED
    return _enabled


def _present(**kwargs: Any) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if v is not None}


# ── client ─────────────────────────────────────────────────


def get_langfuse() -> Optional[Langfuse]:
    """
    Process-wide Langfuse client, created on first call.

    ``None`` when tracing is off or the key pair is missing; the router
    keeps working either way.
    """
    global _client, _client_checked
    if _client_checked:
        return _client
    _client_checked = True

    if not _is_enabled():
        logger.info("Tracing disabled - LangFuse client not created.")
        return None

    secret_key = os.getenv("LANGFUSE_SECRET_KEY")
    public_key = os.getenv("LANGFUSE_PUBLIC_KEY")
    if not (secret_key and public_key):
        logger.warning("LANGFUSE_SECRET_KEY / LANGFUSE_PUBLIC_KEY missing - routes will not be traced.")
        return None

    host = os.getenv("LANGFUSE_BASE_URL", _DEFAULT_HOST)
    try:
        _client = Langfuse(secret_key=secret_key, public_key=public_key, host=host)
    except Exception as exc:
        logger.error("LangFuse client creation failed: {}", exc)
        return None
    logger.info("LangFuse tracing on (host={})", host)
    return _client


# ── prompt management ──────────────────────────────────────


def fetch_prompt(
    name: str,
    *,
    fallback: str,
    cache_ttl_seconds: int = 300,
    **compile_vars: str,
) -> str:
    """
    Compile the LangFuse text prompt ``name`` with ``compile_vars``.

    LangFuse prompts use ``{{var}}``; the local ``fallback`` uses Python
    ``{var}`` formatting and is used whenever the prompt can't be fetched.
    """
    client = get_langfuse()
    if client is not None:
        try:
            prompt = client.get_prompt(name, type="text", cache_ttl_seconds=cache_ttl_seconds)
            logger.debug("Prompt '{}' v{} from LangFuse", name, getattr(prompt, "version", "?"))
            return prompt.compile(**compile_vars)
        except Exception as exc:
            logger.debug("Prompt '{}' unavailable in LangFuse ({}); using local template", name, exc)

    return fallback.format(**compile_vars) if compile_vars else fallback


# ── decorator ──────────────────────────────────────────────


def observe(*, name: Optional[str] = None, as_type: Optional[str] = None):
    """``langfuse.observe`` when tracing is on, identity otherwise (sync or async)."""
    if not _is_enabled():
        return lambda fn: fn
    return _lf_observe(**_present(name=name, as_type=as_type))


# ── trace / span updates (never raise) ─────────────────────


def update_current_trace(
    *,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    tags: Optional[list] = None,
) -> None:
    if not _is_enabled():
        return
    try:
        _get_lf_client().update_current_trace(
            **_present(user_id=user_id, session_id=session_id, metadata=metadata, tags=tags)
        )
    except Exception as exc:
        logger.debug("update_current_trace skipped: {}", exc)


def update_current_observation(
    *,
    input: Optional[str] = None,
    output: Optional[str] = None,
    metadata: Optional[dict] = None,
    model: Optional[str] = None,
) -> None:
    """Annotate the open span; with ``model`` the span is treated as a generation."""
    if not _is_enabled():
        return
    fields = _present(input=input, output=output, metadata=metadata)
    if not fields and model is None:
        return
    try:
        client = _get_lf_client()
        if model is None:
            client.update_current_span(**fields)
        else:
            client.update_current_generation(model=model, **fields)
    except Exception as exc:
        logger.debug("update_current_observation skipped: {}", exc)


def score_current_trace(name: str, value: float, comment: Optional[str] = None) -> None:
    """Attach a numeric score (e.g. routing confidence) to the open trace."""
    if not _is_enabled():
        return
    try:
        _get_lf_client().score_current_trace(**_present(name=name, value=value, comment=comment))
    except Exception as exc:
        logger.debug("score_current_trace skipped: {}", exc)


def flush() -> None:
    """Send buffered events; call before the process exits."""
    if not _is_enabled():
        return
    try:
        _get_lf_client().flush()
        logger.debug("LangFuse events flushed")
    except Exception as exc:
        logger.debug("LangFuse flush failed: {}", exc)
