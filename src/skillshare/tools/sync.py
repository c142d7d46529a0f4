"""Sync, diff and collect tools."""

from skillshare.core import collect as collector
from skillshare.core import sync as engine
from skillshare.core.locks import source_lock
from skillshare.tools.common import current_config, logged


def sync(dry_run: bool = False, force: bool = False, target: str | None = None) -> dict:
    """Reconcile targets with the source directory.

    Args:
        dry_run: Compute the result without touching the filesystem
        force: Replace local copies and prune locally modified entries
        target: Only this target (default: all)

    Returns:
        Dict with "results", one SyncResult per target.
    """
    cfg, source = current_config()
    args = {"dryRun": dry_run, "force": force, "target": target}
    if dry_run:
        results = engine.sync(cfg, dry_run=True, force=force, target=target)
    else:
        with logged("sync", args), source_lock(source):
            results = engine.sync(cfg, dry_run=False, force=force, target=target)
    return {"results": [r.to_json_dict() for r in results]}


def diff(target: str | None = None) -> dict:
    """What a sync would change, per target (read-only)."""
    cfg, _ = current_config()
    return {"diffs": [d.to_json_dict() for d in engine.diff(cfg, target)]}


def collect_scan(target: str | None = None) -> dict:
    """Skills created directly inside targets that are not in the source yet."""
    cfg, _ = current_config()
    return collector.collect_scan(cfg, target).to_json_dict()


def collect(skills: list[dict], force: bool = False) -> dict:
    """Copy selected local skills from targets into the source.

    Args:
        skills: List of {"name", "targetName"}
        force: Overwrite existing source skills with the same name

    Returns:
        Dict with "pulled", "skipped" and "failed" (name → error).
    """
    cfg, source = current_config()
    with logged("collect", {"count": len(skills), "force": force}), source_lock(source):
        result = collector.collect(cfg, skills, force=force)
    return result.to_json_dict()
