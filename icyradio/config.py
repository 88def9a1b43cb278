"""Module 1 — Config & Constants"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (one level up from icyradio/)
_ROOT = Path(__file__).parent.parent
load_dotenv(_ROOT / ".env")

APP_VERSION = "0.1.0"

# ─── Paths ────────────────────────────────────────────────────────────────────
ROOT_DIR = _ROOT
OUTPUT_DIR = ROOT_DIR / os.getenv("OUTPUT_DIR", "output")
ERRORS_LOG = OUTPUT_DIR / "errors.log"

# ─── Artwork sources ──────────────────────────────────────────────────────────
ITUNES_SEARCH_URL = os.getenv("ITUNES_SEARCH_URL", "https://itunes.apple.com/search")
# Per-request bound, applied to every artwork query and image download
ARTWORK_TIMEOUT = float(os.getenv("ARTWORK_TIMEOUT", "10"))
# iTunes serves artworkUrl30 thumbnails; the same path renders larger sizes
ARTWORK_LOW_RES_TOKEN = os.getenv("ARTWORK_LOW_RES_TOKEN", "30x30bb")
ARTWORK_HIGH_RES_TOKEN = os.getenv("ARTWORK_HIGH_RES_TOKEN", "500x500bb")
USER_AGENT = f"icyradio/{APP_VERSION}"

# ─── Stream metadata ──────────────────────────────────────────────────────────
TITLE_DELIMITER = " - "
STREAM_SCHEMES = ("http", "https", "icy")

# ─── Event bus ────────────────────────────────────────────────────────────────
SUBSCRIBER_QUEUE_SIZE = 50

# ─── Dev mode ─────────────────────────────────────────────────────────────────
DEV_MODE = os.getenv("DEV_MODE", "0").strip() in ("1", "true", "yes")
