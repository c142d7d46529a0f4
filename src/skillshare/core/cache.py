"""On-disk cache of fetched hub indexes, one JSON file per hub URL."""

import hashlib
import json
import logging
import time
from pathlib import Path

from skillshare.config import settings

logger = logging.getLogger("skillshare.cache")


def _entry_path(hub_url: str) -> Path:
    digest = hashlib.sha256(hub_url.encode()).hexdigest()[:16]
    return settings.cache_path / f"hub_{digest}.json"


def load_hub(hub_url: str, now: float | None = None) -> dict | None:
    """The cached index for a hub URL, or None when missing, unreadable or expired."""
    path = _entry_path(hub_url)
    if not path.exists():
        return None
    try:
        entry = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Unreadable hub cache %s: %s", path.name, e)
        return None

    age = (now if now is not None else time.time()) - entry.get("fetchedAt", 0)
    if age > settings.cache_hub_ttl:
        path.unlink(missing_ok=True)
        return None
    return entry.get("index")


def store_hub(hub_url: str, index: dict, now: float | None = None) -> None:
    path = _entry_path(hub_url)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps({"url": hub_url, "fetchedAt": now if now is not None else time.time(), "index": index}),
            encoding="utf-8",
        )
    except OSError as e:
        logger.warning("Could not cache hub index for %s: %s", hub_url, e)


def clear_hubs() -> int:
    """Delete every cached hub index. Returns the number removed."""
    if not settings.cache_path.exists():
        return 0
    removed = 0
    for path in settings.cache_path.glob("hub_*.json"):
        path.unlink(missing_ok=True)
        removed += 1
    if removed:
        logger.info("Cleared %d cached hub index(es)", removed)
    return removed
