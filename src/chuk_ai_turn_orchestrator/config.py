# chuk_ai_turn_orchestrator/config.py
"""
Central configuration for turn orchestration.

Values are read once at import time. A ``.env`` file in the working
directory is honoured via python-dotenv; every constant can be overridden
through the environment.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r} (using {default})")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive value for {name}: {raw!r} (using {default})")
        return default
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r} (using {default})")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive value for {name}: {raw!r} (using {default})")
        return default
    return value


# Streaming previews: publish at most every N ms unless a boundary char arrives
PREVIEW_INTERVAL_SECONDS = _env_float("CHUK_TURN_PREVIEW_INTERVAL_MS", 50.0) / 1000.0
PREVIEW_BOUNDARY_CHARS = frozenset(".!?;:\n")

# Heuristic used when the engine omits token counts. Not a tokenizer.
CHARS_PER_TOKEN = _env_float("CHUK_TURN_CHARS_PER_TOKEN", 3.5)

# Agent loop safety guard
AGENT_MAX_ITERATIONS = _env_int("CHUK_TURN_AGENT_MAX_ITERATIONS", 10)

# Deferred persistence
SAVE_DEBOUNCE_SECONDS = _env_float("CHUK_TURN_SAVE_DEBOUNCE_MS", 300.0) / 1000.0
TITLE_MAX_CHARS = 40
DEFAULT_TITLE = "New Chat"

DEFAULT_SYSTEM_PROMPT = os.getenv("CHUK_TURN_SYSTEM_PROMPT", "You are a helpful assistant.")
DEFAULT_CONTEXT_SIZE = _env_int("CHUK_TURN_CONTEXT_SIZE", 4096)
