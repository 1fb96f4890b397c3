"""``cop update``: compare the installed version with the latest release."""

from __future__ import annotations

import logging
import re
from typing import Optional, Tuple

import requests

from . import __version__
from .output import print_output, warn

logger = logging.getLogger(__name__)

PACKAGE_NAME = "continuous-opencode"
RELEASE_URL = f"https://pypi.org/pypi/{PACKAGE_NAME}/json"
REQUEST_TIMEOUT = 10


def _version_key(version: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in re.findall(r"\d+", version)[:3])


def is_newer(latest: str, current: str) -> bool:
    """True when ``latest`` is a strictly higher release than ``current``."""
    latest_key, current_key = _version_key(latest), _version_key(current)
    if latest_key and current_key:
        return latest_key > current_key
    return latest != current


def fetch_latest_version(session: Optional[requests.Session] = None) -> Optional[str]:
    """Latest published version, or None if the index could not be reached."""
    http = session or requests
    try:
        response = http.get(
            RELEASE_URL,
            headers={"User-Agent": f"{PACKAGE_NAME}/{__version__}"},
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        logger.debug("Update check failed: %s", e)
        return None
    except ValueError as e:
        logger.debug("Update check returned invalid JSON: %s", e)
        return None

    version = (data.get("info") or {}).get("version") if isinstance(data, dict) else None
    return str(version) if version else None


def check_for_updates(session: Optional[requests.Session] = None) -> int:
    print_output("🔄 Checking for updates...")
    latest = fetch_latest_version(session)
    if latest is None:
        warn("Could not check for updates")
        return 0

    if is_newer(latest, __version__):
        print_output(f"📦 New version available: {latest} (current: {__version__})")
        print_output(f"   Run 'pip install --upgrade {PACKAGE_NAME}' to update")
    else:
        print_output("✅ You're on the latest version")
    return 0
