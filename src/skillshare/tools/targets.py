"""Target registry tools."""

from skillshare.config import save_config
from skillshare.core import targets as registry
from skillshare.core.locks import source_lock
from skillshare.core.store import discover_skills
from skillshare.tools.common import current_config, logged


def list_targets() -> dict:
    """Configured targets with status, link counts and drift.

    Returns:
        Dict with "targets" (list) and "sourceSkillCount".
    """
    cfg, source = current_config()
    skills = discover_skills(source)
    return {
        "targets": [t.to_json_dict() for t in registry.list_targets(cfg, skills)],
        "sourceSkillCount": len(skills),
    }


def add_target(name: str, path: str, mode: str = "", include: list[str] | None = None, exclude: list[str] | None = None) -> dict:
    """Register a new sync target.

    Args:
        name: Unique target name (e.g. "claude")
        path: Target skills directory
        mode: "merge", "copy" or "symlink" (empty = global mode)
        include: Glob/prefix patterns of skills to include (empty = all)
        exclude: Glob/prefix patterns of skills to exclude (wins over include)
    """
    cfg, source = current_config()
    with logged("target-add", {"name": name, "path": path}), source_lock(source):
        registry.add_target(cfg, name, path, mode=mode, include=include, exclude=exclude)
        save_config(cfg)
    return {"success": True}


def update_target(name: str, include: list[str] | None = None, exclude: list[str] | None = None, mode: str | None = None) -> dict:
    """Change a target's filters or mode. Omitted fields are unchanged."""
    cfg, source = current_config()
    with logged("target-update", {"name": name}), source_lock(source):
        registry.update_target(cfg, name, include=include, exclude=exclude, mode=mode)
        save_config(cfg)
    return {"success": True}


def remove_target(name: str) -> dict:
    """Unregister a target; its skill links are replaced by real copies."""
    cfg, source = current_config()
    with logged("target-remove", {"name": name}), source_lock(source):
        registry.remove_target(cfg, name)
        save_config(cfg)
    return {"success": True}


def available_targets() -> dict:
    """Well-known tool skill directories on this machine."""
    cfg, _ = current_config()
    return {"targets": registry.available_targets(cfg)}
