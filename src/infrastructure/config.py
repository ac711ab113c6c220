"""
Application configuration - loads from YAML param files.

CONFIGURATION POLICY:
====================
Configuration is loaded from config/param.yaml.
Secrets (API keys, audit DB URL) live ONLY in .env and are loaded via os.getenv().

Handler text generation goes through OpenRouter's unified API by default;
direct OpenAI is supported by switching ``provider.default``.
"""

from pathlib import Path
from typing import Any, Dict, Optional
import os
import yaml
from loguru import logger

# ========================================
# Project Paths
# ========================================

# Get project root (parent of src/infrastructure/)
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_CONFIG_DIR = _PROJECT_ROOT / "config"

# ========================================
# YAML Config Loading
# ========================================

def _load_yaml(filename: str) -> Dict[str, Any]:
    """Load a YAML config file."""
    filepath = _CONFIG_DIR / filename
    if not filepath.exists():
        return {}
    with open(filepath, "r") as f:
        return yaml.safe_load(f) or {}


def _get_nested(d: Dict, *keys, default=None):
    """Get nested dictionary value safely."""
    for key in keys:
        if isinstance(d, dict):
            d = d.get(key, default)
        else:
            return default
    return d if d is not None else default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Load configs
_PARAMS = _load_yaml("param.yaml")

# ========================================
# Provider Configuration
# ========================================

PROVIDER = _get_nested(_PARAMS, "provider", "default", default="openrouter")
OPENROUTER_BASE_URL = _get_nested(_PARAMS, "provider", "openrouter_base_url",
                                   default="https://openrouter.ai/api/v1")

# Handler text generation: one model shared by every handler persona
HANDLER_MODEL = _get_nested(_PARAMS, "provider", "handler_model", default="openai/gpt-4o-mini")
HANDLER_PROVIDER = _get_nested(_PARAMS, "provider", "handler_provider", default=PROVIDER)

# ========================================
# LLM Defaults
# ========================================

LLM_TEMPERATURE = _get_nested(_PARAMS, "llm", "temperature", default=0.3)
LLM_MAX_TOKENS = _get_nested(_PARAMS, "llm", "max_tokens", default=1200)

# ========================================
# Router
# ========================================

ROUTER_SUPPORT_TIMEOUT_SECONDS = float(
    _get_nested(_PARAMS, "router", "support_timeout_seconds", default=20.0))
ROUTER_MAX_SUPPORT_CONCURRENCY = int(
    _get_nested(_PARAMS, "router", "max_support_concurrency", default=4))

# Streaming: word groups per chunk and pacing between chunks
STREAM_CHUNK_WORDS = int(_get_nested(_PARAMS, "router", "stream", "chunk_words", default=5))
STREAM_CHUNK_DELAY_SECONDS = float(
    _get_nested(_PARAMS, "router", "stream", "chunk_delay_seconds", default=0.05))

# ========================================
# Delegation
# ========================================

MONITOR_INTERVAL_SECONDS = float(
    _get_nested(_PARAMS, "delegation", "monitor_interval_seconds", default=30.0))

# Static workload figures until a real scheduler supplies live load
WORKLOAD_DEFAULT_CURRENT_TASKS = int(
    _get_nested(_PARAMS, "delegation", "workload", "current_tasks", default=3))
WORKLOAD_DEFAULT_CAPACITY = int(
    _get_nested(_PARAMS, "delegation", "workload", "capacity", default=10))

# ========================================
# Audit
# ========================================

AUDIT_SINK = _get_nested(_PARAMS, "audit", "sink", default="log")  # log | sql
AUDIT_TABLE_NAME = _get_nested(_PARAMS, "audit", "table_name", default="delegation_events")
AUDIT_DB_URL = os.getenv("AUDIT_DB_URL", None)

# ========================================
# Observability
# ========================================

OBSERVABILITY_ENABLED = _env_flag(
    "OBSERVABILITY_ENABLED",
    bool(_get_nested(_PARAMS, "observability", "enabled", default=True)),
)

# ========================================
# Helper Functions
# ========================================

def get_api_key(provider: Optional[str] = None) -> Optional[str]:
    """Get API key for the specified provider."""
    provider = provider or PROVIDER
    key_map = {
        "openrouter": "OPENROUTER_API_KEY",
        "openai": "OPENAI_API_KEY",
    }
    env_var = key_map.get(provider, f"{provider.upper()}_API_KEY")
    return os.getenv(env_var)


def validate() -> None:
    """
    Validate configuration required for live text generation.

    Raises:
        ValueError: If required secrets are missing
    """
    api_key = get_api_key(HANDLER_PROVIDER)
    if not api_key:
        key_name = "OPENROUTER_API_KEY" if HANDLER_PROVIDER == "openrouter" else f"{HANDLER_PROVIDER.upper()}_API_KEY"
        raise ValueError(
            f" Missing required secret: {key_name}\n"
            f"Please add it to your .env file."
        )
    if AUDIT_SINK == "sql" and not AUDIT_DB_URL:
        raise ValueError(" audit.sink is 'sql' but AUDIT_DB_URL is not set.")


def dump() -> None:
    """Print all active non-secret configuration values for debugging."""
    logger.info("\n" + "=" * 60)
    logger.info("CONFIGURATION (NON-SECRETS ONLY)")
    logger.info("=" * 60)

    logger.info("\n Provider:")
    logger.info(f"   Provider: {HANDLER_PROVIDER}")
    logger.info(f"   Handler Model: {HANDLER_MODEL}")
    logger.info(f"   Temperature: {LLM_TEMPERATURE}")
    logger.info(f"   Max Tokens: {LLM_MAX_TOKENS}")

    logger.info("\n Router:")
    logger.info(f"   Support Timeout: {ROUTER_SUPPORT_TIMEOUT_SECONDS}s")
    logger.info(f"   Max Support Concurrency: {ROUTER_MAX_SUPPORT_CONCURRENCY}")
    logger.info(f"   Stream Chunk: {STREAM_CHUNK_WORDS} words / {STREAM_CHUNK_DELAY_SECONDS}s")

    logger.info("\n Delegation:")
    logger.info(f"   Monitor Interval: {MONITOR_INTERVAL_SECONDS}s")
    logger.info(f"   Static Workload: {WORKLOAD_DEFAULT_CURRENT_TASKS}/{WORKLOAD_DEFAULT_CAPACITY}")

    logger.info("\n Audit:")
    logger.info(f"   Sink: {AUDIT_SINK}")
    logger.info(f"   Table: {AUDIT_TABLE_NAME}")
    logger.info(f"   DB URL: {'Set' if AUDIT_DB_URL else 'Not set'}")

    logger.info("\n Observability:")
    logger.info(f"   Enabled: {OBSERVABILITY_ENABLED}")

    logger.info("\n" + "=" * 60 + "\n")


def get_config() -> Dict[str, Any]:
    """Return full config dictionary."""
    return _PARAMS
