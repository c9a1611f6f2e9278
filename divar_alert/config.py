"""
Bot Configuration
=================

Configuration for the Divar alert bot. Values come from the environment,
with a `.env` file in the project root loaded first if present.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

_project_root = Path(__file__).parent.parent
_env_path = _project_root / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

# =============================================================================
# TELEGRAM SETTINGS
# =============================================================================

TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN", "")

# Self-hosted Bot API servers are supported, default is the public one
TELEGRAM_API_URL = os.environ.get("TELEGRAM_API_URL", "https://api.telegram.org").rstrip("/")

# Long-poll timeout passed to getUpdates (seconds)
TELEGRAM_POLL_TIMEOUT = int(os.environ.get("TELEGRAM_POLL_TIMEOUT", "30"))

# HTTP timeout for every other Bot API call (seconds)
TELEGRAM_REQUEST_TIMEOUT = float(os.environ.get("TELEGRAM_REQUEST_TIMEOUT", "10"))

# Minimum spacing between outgoing messages (Telegram limit: 30/sec)
MIN_MESSAGE_INTERVAL_SECONDS = float(os.environ.get("MIN_MESSAGE_INTERVAL_SECONDS", "0.05"))

# Message formatting
MAX_MESSAGE_LENGTH = 4000      # Telegram limit is 4096
MAX_CAPTION_LENGTH = 1024      # sendPhoto caption limit

# Inbound update handling threads (one task per chat per batch)
MAX_WORKERS = int(os.environ.get("MAX_WORKERS", "4"))

# =============================================================================
# STORAGE
# =============================================================================

DB_PATH = os.environ.get("DB_PATH", str(_project_root / "data" / "divar_alert.db"))

# =============================================================================
# SCHEDULER
# =============================================================================

# Pause between sweeps over due watches
SWEEP_INTERVAL_SECONDS = float(os.environ.get("SWEEP_INTERVAL_SECONDS", "1"))

# =============================================================================
# DIVAR
# =============================================================================

DIVAR_SEARCH_PATH = "/v8/postlist/w/search"
DIVAR_ALLOWED_HOSTS = [
    h.strip()
    for h in os.environ.get("DIVAR_ALLOWED_HOSTS", "api.divar.ir").split(",")
    if h.strip()
]
DIVAR_REQUEST_TIMEOUT = float(os.environ.get("DIVAR_REQUEST_TIMEOUT", "15"))
DIVAR_POST_URL = "https://divar.ir/v/{token}"

# last_post_date is rewritten to this year so cached pages are never served
DIVAR_FAR_FUTURE_YEAR = 2030

# =============================================================================
# DISPLAY
# =============================================================================

DISPLAY_TIMEZONE = os.environ.get("DISPLAY_TIMEZONE", "Asia/Tehran")

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("LOG_FILE", "logs/divar_alert.log")
