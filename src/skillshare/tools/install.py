"""Install, discovery, update and hub search tools."""

from skillshare.core import hub, installer
from skillshare.core.cache import clear_hubs
from skillshare.core.locks import async_source_lock
from skillshare.tools.common import audit_settings, current_config, logged


async def discover(source: str) -> dict:
    """List the skills a source contains, without installing.

    Args:
        source: Local path, GitHub "owner/repo[/path]", or git URL

    Returns:
        Dict with "needsSelection" (more than one skill) and "skills".
    """
    return (await installer.discover(source)).to_json_dict()


async def install(
    source: str,
    name: str | None = None,
    force: bool = False,
    skip_audit: bool = False,
    track: bool = False,
    into: str = "",
) -> dict:
    """Install a skill after a security audit.

    Pipeline: fetch -> stage -> audit -> meta -> atomic swap into the source.

    Args:
        source: Local path, GitHub "owner/repo[/path]", or git URL
        name: Install under this name (default: derived from the source)
        force: Overwrite an existing skill and install despite audit findings
        skip_audit: Do not run the security audit
        track: Clone the whole repository as a tracked repo ("_name")
        into: Subdirectory of the source to install into

    Returns:
        InstallResult as a dict.
    """
    cfg, root = current_config()
    rules, threshold = audit_settings(cfg)
    args = {"source": source, "name": name, "force": force, "skipAudit": skip_audit, "track": track}
    with logged("install", args):
        async with async_source_lock(root):
            result = await installer.install(
                root, source, name=name, force=force, skip_audit=skip_audit,
                track=track, into=into, rules=rules, threshold=threshold,
            )
    return result.to_json_dict()


async def install_batch(
    source: str,
    skills: list[dict],
    force: bool = False,
    skip_audit: bool = False,
    into: str = "",
) -> dict:
    """Install several skills from one source; failures are reported per skill.

    Args:
        source: Source reference shared by all skills
        skills: List of {"name", "path"} as returned by discover
    """
    cfg, root = current_config()
    rules, threshold = audit_settings(cfg)
    with logged("install", {"source": source, "count": len(skills), "force": force, "skipAudit": skip_audit}):
        async with async_source_lock(root):
            result = await installer.install_batch(
                root, source, skills, force=force, skip_audit=skip_audit,
                into=into, rules=rules, threshold=threshold,
            )
    return result.to_json_dict()


async def update(name: str | None = None, update_all: bool = False, force: bool = False, skip_audit: bool = False) -> dict:
    """Update installed skills from their sources and pull tracked repos."""
    cfg, root = current_config()
    rules, threshold = audit_settings(cfg)
    with logged("update", {"name": name, "all": update_all, "force": force}):
        async with async_source_lock(root):
            items = await installer.update(
                root, name=name, update_all=update_all, force=force,
                skip_audit=skip_audit, rules=rules, threshold=threshold,
            )
    return {"results": [i.to_json_dict() for i in items]}


async def search_hub(query: str, hub_url: str, limit: int = 20) -> dict:
    """Search a hub index.

    Args:
        query: Free-text query (empty lists the first entries)
        hub_url: http(s) URL or local path of a hub index JSON
        limit: Maximum number of results
    """
    results = await hub.search_hub(query, hub_url, limit=limit)
    return {"results": [r.to_json_dict() for r in results]}


def hub_index() -> dict:
    """Hub index JSON describing the skills in the source directory."""
    _, root = current_config()
    return hub.build_hub_index(root).to_json_dict()


def refresh_hub() -> dict:
    """Drop cached hub indexes so the next search refetches them."""
    return {"removed": clear_hubs()}
