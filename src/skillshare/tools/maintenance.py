"""Backup and trash tools."""

from datetime import timedelta

from skillshare.config import settings
from skillshare.core import backup, trash
from skillshare.core.errors import NotFoundError
from skillshare.core.locks import source_lock
from skillshare.core.store import get_skill
from skillshare.tools.common import current_config, logged, target_paths


def _policy() -> backup.RetentionPolicy:
    return backup.RetentionPolicy(
        max_age_days=settings.backup_max_age_days,
        max_count=settings.backup_max_count,
        max_size_mb=settings.backup_max_size_mb,
    )


def create_backup(target: str | None = None) -> dict:
    """Snapshot one target (or all) into a new timestamped backup.

    Returns:
        Dict with "backedUpTargets" (empty targets are omitted) and "timestamp".
    """
    cfg, source = current_config()
    paths = target_paths(cfg)
    if target:
        if target not in paths:
            raise NotFoundError(f"target not found: {target}")
        paths = {target: paths[target]}
    with logged("backup", {"target": target}), source_lock(source):
        stamp, names = backup.create_backup(settings.backups_path, paths)
    return {"success": True, "backedUpTargets": names, "timestamp": stamp}


def list_backups() -> dict:
    items = backup.list_backups(settings.backups_path)
    return {
        "backups": [b.to_json_dict() for b in items],
        "totalSizeMB": round(sum(b.size_mb for b in items), 2),
    }


def cleanup_backups() -> dict:
    """Apply the retention policy (age, count, total size)."""
    _, source = current_config()
    with logged("backup-cleanup"), source_lock(source):
        removed = backup.cleanup_backups(settings.backups_path, _policy())
    return {"success": True, "removed": removed}


def restore(timestamp: str, target: str, force: bool = False) -> dict:
    """Restore a target from a backup.

    Args:
        timestamp: Backup identifier (YYYY-MM-DD_HH-MM-SS)
        target: Target name inside the backup
        force: Overwrite a target whose local files differ from the backup
    """
    cfg, source = current_config()
    paths = target_paths(cfg)
    if target not in paths:
        raise NotFoundError(f"target not found: {target}")
    with logged("restore", {"timestamp": timestamp, "target": target, "force": force}), source_lock(source):
        backup.restore_backup(settings.backups_path, timestamp, target, paths[target], force=force)
    return {"success": True}


def list_trash() -> dict:
    """Trashed skills, newest first. Expired entries are purged first."""
    trash.cleanup_trash(settings.trash_path, timedelta(days=settings.trash_max_age_days))
    items = trash.list_trash(settings.trash_path)
    return {
        "items": [t.to_json_dict() for t in items],
        "totalSize": sum(t.size for t in items),
    }


def restore_trash(name: str, force: bool = False) -> dict:
    """Move a trashed skill back into the source.

    Args:
        name: Flat name the skill had when it was deleted
        force: Replace an active skill of the same name (it goes to the trash)
    """
    _, source = current_config()
    with logged("trash-restore", {"name": name, "force": force}), source_lock(source):
        trash.restore_from_trash(settings.trash_path, name, source, force=force)
    try:
        restored = get_skill(source, name).flat_name
    except NotFoundError:
        restored = name
    return {"success": True, "name": restored}


def delete_trash(name: str) -> dict:
    _, source = current_config()
    with logged("trash-delete", {"name": name}), source_lock(source):
        removed = trash.delete_from_trash(settings.trash_path, name)
    return {"success": True, "removed": removed}


def empty_trash() -> dict:
    _, source = current_config()
    with logged("trash-empty"), source_lock(source):
        removed = trash.empty_trash(settings.trash_path)
    return {"success": True, "removed": removed}
