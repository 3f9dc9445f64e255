"""
Runtime settings for the POS terminal, read from the environment (and .env).

Env vars:
  POS_API_BASE_URL       Backend base URL (default: http://localhost:3000)
  POS_API_TOKEN          Bearer token sent to the backend (optional)
  POS_API_TIMEOUT        Seconds per backend request (default: 15)
  POS_API_CACHE_SECONDS  Lifetime of cached GET responses (default: 5)
  POS_TAX_RATE           Sales tax as a fraction, e.g. 0.0825 (default: 0.0825)
  POS_SYNC_STATUS_LIMIT  Sales per sync status snapshot (default: 20)
  POS_NOTIFY_DURATION_MS Auto-dismiss delay for notifications (default: 5000)
  POS_STORE_NAME         Location name printed on receipts
  POS_LOG_LEVEL          Logging level name (default: INFO)
  SYNC_INTERVAL          Seconds between sync status polls (default: 30)
"""
import logging
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_string(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return trimmed string-valued env vars, normalizing empty strings to None."""
    raw = os.getenv(name, default)
    if raw is None:
        return default
    if isinstance(raw, str):
        clean = raw.strip()
        return clean if clean else default
    return raw


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env_string(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env_string(name, str(default)))
    except (TypeError, ValueError):
        return default


def log_level(name: Optional[str] = None) -> int:
    level_name = (name or _env_string('POS_LOG_LEVEL', 'INFO') or 'INFO').upper()
    level = getattr(logging, level_name, logging.INFO)
    return level if isinstance(level, int) else logging.INFO


API_BASE_URL = _env_string('POS_API_BASE_URL', 'http://localhost:3000')
API_TOKEN = _env_string('POS_API_TOKEN')
API_TIMEOUT = _env_float('POS_API_TIMEOUT', 15.0)
API_CACHE_SECONDS = _env_float('POS_API_CACHE_SECONDS', 5.0)

TAX_RATE = _env_float('POS_TAX_RATE', 0.0825)
SYNC_STATUS_LIMIT = max(1, _env_int('POS_SYNC_STATUS_LIMIT', 20))
NOTIFY_DURATION_MS = max(0, _env_int('POS_NOTIFY_DURATION_MS', 5000))
STORE_NAME = _env_string('POS_STORE_NAME', '')
SYNC_INTERVAL = max(5.0, _env_float('SYNC_INTERVAL', 30.0))
