"""Hub indexes: build one from the source tree, search a remote or local one.

The hub location is always passed explicitly by the caller.
"""

import json
import logging
from pathlib import Path

import httpx
from pydantic import ValidationError

from skillshare.config import settings
from skillshare.core.cache import load_hub, store_hub
from skillshare.core.errors import InvalidInputError, IOFailureError, NotFoundError
from skillshare.core.files import now_iso
from skillshare.core.matcher import rank_entries
from skillshare.core.store import SKILL_FILE, discover_skills, read_frontmatter
from skillshare.models import HubEntry, HubIndex, SearchResult

logger = logging.getLogger("skillshare.hub")


def build_hub_index(source: Path) -> HubIndex:
    """Index of the installed skills, suitable for publishing as a hub."""
    entries = []
    for skill in discover_skills(source):
        fm = read_frontmatter(Path(skill.source_path) / SKILL_FILE)
        tags = fm.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        entries.append(HubEntry(
            name=str(fm.get("name") or skill.name),
            description=skill.description,
            source=skill.source or skill.rel_path,
            tags=[str(t) for t in tags],
        ))
    return HubIndex(generated_at=now_iso(), skills=entries)


def _parse_index(data: object, location: str) -> HubIndex:
    try:
        return HubIndex.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(f"invalid hub index at {location}: {e.error_count()} error(s)") from e


async def load_hub_index(hub_url: str) -> HubIndex:
    """Fetch a hub index from an http(s) URL (cached) or read a local file."""
    if not hub_url:
        raise InvalidInputError("hub URL is required")

    if not hub_url.startswith(("http://", "https://")):
        path = Path(hub_url.removeprefix("file://")).expanduser()
        if not path.is_file():
            raise NotFoundError(f"hub index not found: {hub_url}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise InvalidInputError(f"hub index is not valid JSON: {e}") from e
        return _parse_index(data, hub_url)

    cached = load_hub(hub_url)
    if cached is not None:
        return _parse_index(cached, hub_url)

    try:
        async with httpx.AsyncClient(timeout=settings.hub_timeout, follow_redirects=True) as client:
            response = await client.get(hub_url)
            response.raise_for_status()
            data = response.json()
    except httpx.HTTPError as e:
        logger.error("Hub fetch failed: %s", e)
        raise IOFailureError(f"failed to fetch hub index: {e}") from e
    except ValueError as e:
        raise InvalidInputError(f"hub index is not valid JSON: {e}") from e

    index = _parse_index(data, hub_url)
    store_hub(hub_url, index.to_json_dict())
    return index


async def search_hub(query: str, hub_url: str, limit: int = 20) -> list[SearchResult]:
    index = await load_hub_index(hub_url)
    results = rank_entries(index.skills, query, limit=limit)
    logger.info("Hub search '%s': %d results from %d entries", query, len(results), len(index.skills))
    return results
