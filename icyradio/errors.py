"""Error taxonomy + structured error logging — JSON lines to errors.log."""
import json
import logging
import sys
from datetime import datetime
from typing import Optional

from . import config

logger = logging.getLogger(__name__)

_FRIENDLY_MESSAGES = {
    "transport": "The stream stopped unexpectedly.",
    "stream_config": "That stream address can't be played.",
}


class RadioError(Exception):
    """Base class for errors the core reports to the host."""


class StreamConfigError(RadioError, ValueError):
    """Stream configuration is missing or invalid. Raised before any state changes."""


def format_error(
    stage: str,
    raw: str = "",
    context: Optional[dict] = None,
) -> str:
    entry = {
        "timestamp": datetime.now().isoformat(),
        "stage": stage,
        "context": context,
        "error": raw,
        "python": sys.version.split()[0],
    }

    _append_to_log(entry)
    logger.error("Error at %s: %s", stage, raw)

    if config.DEV_MODE:
        return json.dumps(entry, indent=2)
    return _FRIENDLY_MESSAGES.get(stage, f"Something went wrong ({stage}).")


def _append_to_log(entry: dict):
    try:
        config.ERRORS_LOG.parent.mkdir(parents=True, exist_ok=True)
        with open(config.ERRORS_LOG, "a") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError:
        pass
