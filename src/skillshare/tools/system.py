"""Git, config and operations-log tools."""

from skillshare.config import parse_config, settings
from skillshare.core import gitops, oplog
from skillshare.core import sync as engine
from skillshare.core.locks import source_lock
from skillshare.tools.common import current_config, logged


def git_status() -> dict:
    _, source = current_config()
    return gitops.git_status(source)


def push(message: str = "", dry_run: bool = False) -> dict:
    """Commit all changes in the source directory and push them.

    Args:
        message: Commit message (default "Update skills")
        dry_run: Only report what would be pushed
    """
    _, source = current_config()
    with logged("push", {"message": message, "dryRun": dry_run}), source_lock(source):
        return gitops.push(source, message=message, dry_run=dry_run)


def pull(dry_run: bool = False) -> dict:
    """Pull the source repository, then sync all targets.

    Returns:
        Dict with "upToDate", "commits" and "syncResults".
    """
    cfg, source = current_config()
    with logged("pull", {"dryRun": dry_run}), source_lock(source):
        result = gitops.pull(source, dry_run=dry_run)
        results = engine.sync(cfg, dry_run=dry_run) if cfg.targets else []
    result["syncResults"] = [r.to_json_dict() for r in results]
    return result


def get_config() -> dict:
    """Raw config.yaml text plus its parsed form."""
    path = settings.config_path
    raw = path.read_text(encoding="utf-8") if path.exists() else ""
    cfg = parse_config(raw)
    return {"raw": raw, "config": cfg.model_dump(), "path": str(path)}


def put_config(raw: str) -> dict:
    """Validate and save config.yaml. Invalid YAML or fields are rejected unchanged."""
    parse_config(raw)
    path = settings.config_path
    with logged("config", {"path": str(path)}):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(raw, encoding="utf-8")
    return {"success": True}


def get_log(log_type: str = "ops", limit: int = 100, cmd: str = "", status: str = "", since: str = "") -> dict:
    """Operations (or audit) log entries, newest first."""
    return oplog.read_log(log_type, limit=limit, cmd=cmd, status=status, since=since)


def clear_log(log_type: str = "ops") -> dict:
    oplog.clear_log(log_type)
    return {"success": True}
