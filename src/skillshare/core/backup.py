"""Backups of target directories: create, list, restore and retention cleanup.

Layout: ``<backups>/<YYYY-MM-DD_HH-MM-SS>/<targetName>/``. Only local
(non-symlink) content is archived; skill links are recreated by sync.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from skillshare.core.errors import ConflictError, InvalidInputError, NotFoundError
from skillshare.core.files import (
    STAMP_LEN,
    copy_dir,
    dir_checksum,
    dir_size,
    format_stamp,
    is_hidden,
    now_utc,
    parse_stamp,
    replace_dir,
    stage_copy,
)
from skillshare.models import BackupInfo

logger = logging.getLogger("skillshare.backup")

MB = 1024 * 1024


@dataclass
class RetentionPolicy:
    max_age_days: int = 30
    max_count: int = 10
    max_size_mb: int = 500


def _has_local_content(path: Path) -> bool:
    for root, dirs, files in os.walk(path):
        if any(not os.path.islink(os.path.join(root, f)) for f in files):
            return True
    return False


def create_backup(backup_root: Path, targets: dict[str, Path], now: datetime | None = None) -> tuple[str, list[str]]:
    """Snapshot targets into a new timestamped backup.

    Missing, symlinked and empty targets are omitted. Returns
    ``(timestamp, backed_up_target_names)``; the timestamp is "" when nothing
    was backed up.
    """
    now = now or now_utc()
    stamp = format_stamp(now)
    snapshot = backup_root / stamp
    n = 1
    while any((snapshot / name).exists() for name in targets):
        stamp = f"{format_stamp(now)}-{n}"
        snapshot = backup_root / stamp
        n += 1

    backed_up: list[str] = []
    for name, path in sorted(targets.items()):
        if path.is_symlink() or not path.is_dir() or not _has_local_content(path):
            logger.debug("Backup: skipping '%s' (missing, symlink or empty)", name)
            continue
        dest = snapshot / name
        try:
            copy_dir(path, dest, skip_symlinks=True, skip_git=False)
        except (OSError, shutil.Error):
            shutil.rmtree(dest, ignore_errors=True)
            raise
        backed_up.append(name)

    if not backed_up:
        return "", []
    logger.info("Backup %s: %s", stamp, ", ".join(backed_up))
    return stamp, backed_up


def _backup_date(stamp: str) -> datetime | None:
    return parse_stamp(stamp[:STAMP_LEN])


def list_backups(backup_root: Path) -> list[BackupInfo]:
    """All backups, newest first."""
    if not backup_root.is_dir():
        return []

    backups = []
    for entry in backup_root.iterdir():
        if not entry.is_dir() or is_hidden(entry.name):
            continue
        date = _backup_date(entry.name)
        if date is None:
            continue
        targets = sorted(p.name for p in entry.iterdir() if p.is_dir())
        backups.append(BackupInfo(
            timestamp=entry.name,
            path=str(entry),
            targets=targets,
            date=date.isoformat(),
            size_mb=round(dir_size(entry) / MB, 2),
        ))
    backups.sort(key=lambda b: b.timestamp, reverse=True)
    return backups


def cleanup_backups(backup_root: Path, policy: RetentionPolicy | None = None, now: datetime | None = None) -> int:
    """Apply the retention policy and return how many backups were removed.

    Newest first, backups are kept while every bound holds (age, count,
    cumulative size); the first one to break a bound and all older ones go.
    """
    policy = policy or RetentionPolicy()
    now = now or now_utc()
    max_age = timedelta(days=policy.max_age_days)
    max_bytes = policy.max_size_mb * MB

    kept = 0
    kept_bytes = 0
    removed = 0
    keeping = True
    for info in list_backups(backup_root):
        path = Path(info.path)
        size = dir_size(path)
        if keeping:
            date = _backup_date(info.timestamp)
            too_old = policy.max_age_days > 0 and date is not None and now - date > max_age
            too_many = policy.max_count > 0 and kept >= policy.max_count
            too_big = policy.max_size_mb > 0 and kept_bytes + size > max_bytes
            keeping = not (too_old or too_many or too_big)
        if keeping:
            kept += 1
            kept_bytes += size
            continue
        shutil.rmtree(path)
        removed += 1
        logger.info("Removed backup %s", info.timestamp)
    return removed


def get_backup_target(backup_root: Path, timestamp: str, target: str) -> Path:
    if not timestamp or "/" in timestamp or ".." in timestamp:
        raise InvalidInputError(f"invalid backup timestamp: {timestamp!r}")
    snapshot = backup_root / timestamp
    if not snapshot.is_dir():
        raise NotFoundError(f"backup not found: {timestamp}")
    path = snapshot / target
    if not path.is_dir():
        raise NotFoundError(f"target '{target}' not found in backup {timestamp}")
    return path


def restore_backup(backup_root: Path, timestamp: str, target: str, dest: Path, force: bool = False) -> None:
    """Replace a target's contents with an archived snapshot.

    A non-empty destination whose local files differ from the snapshot is a
    conflict unless ``force``.
    """
    snapshot = get_backup_target(backup_root, timestamp, target)

    if dest.is_symlink():
        if not force:
            raise ConflictError(f"{dest} is a symlink; use force to replace it")
    elif dest.is_dir() and _has_local_content(dest):
        if not force and dir_checksum(dest) != dir_checksum(snapshot):
            raise ConflictError(f"destination is not empty and differs from backup: {dest} (use force to overwrite)")

    staged = stage_copy(snapshot, dest)
    try:
        replace_dir(staged, dest)
    finally:
        shutil.rmtree(staged.parent, ignore_errors=True)
    logger.info("Restored '%s' from backup %s", target, timestamp)
