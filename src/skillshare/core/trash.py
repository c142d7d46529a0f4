"""Trash: recoverable soft-delete for skills and tracked repos.

Entries live in ``<trash>/<flatName>_<YYYY-MM-DD_HH-MM-SS>/``. They are purged
after a retention window (7 days by default); every function that depends on
the current time takes ``now`` so expiry is deterministic in tests.
"""

import logging
import os
import shutil
from datetime import datetime, timedelta
from pathlib import Path

from skillshare.core.errors import ConflictError, NotFoundError
from skillshare.core.files import (
    STAMP_LEN,
    copy_dir,
    dir_size,
    format_stamp,
    is_hidden,
    now_utc,
    parse_stamp,
    remove_path,
)
from skillshare.core.store import rel_from_flat
from skillshare.models import TrashedSkill

logger = logging.getLogger("skillshare.trash")

DEFAULT_MAX_AGE = timedelta(days=7)


def _parse_entry(dirname: str) -> tuple[str, datetime] | None:
    """Split ``name_YYYY-MM-DD_HH-MM-SS`` into (name, time)."""
    if len(dirname) < STAMP_LEN + 2 or dirname[-STAMP_LEN - 1] != "_":
        return None
    moment = parse_stamp(dirname[-STAMP_LEN:])
    if moment is None:
        return None
    return dirname[: -STAMP_LEN - 1], moment


def _move(src: Path, dest: Path) -> None:
    """Rename, falling back to copy + delete across filesystems."""
    try:
        os.rename(src, dest)
    except OSError:
        copy_dir(src, dest, skip_git=False)
        remove_path(src)


def move_to_trash(src: Path, name: str, trash_root: Path, now: datetime | None = None) -> Path:
    """Move a skill (or repo) directory into the trash and return the entry path."""
    if not (src.exists() or src.is_symlink()):
        raise NotFoundError(f"not found: {src}")
    now = now or now_utc()
    trash_root.mkdir(parents=True, exist_ok=True)

    dest = trash_root / f"{name}_{format_stamp(now)}"
    while dest.exists():
        now += timedelta(seconds=1)
        dest = trash_root / f"{name}_{format_stamp(now)}"

    _move(src, dest)
    logger.info("Moved '%s' to trash", name)
    return dest


def list_trash(trash_root: Path) -> list[TrashedSkill]:
    """Trash entries, newest first."""
    if not trash_root.is_dir():
        return []
    items = []
    for entry in trash_root.iterdir():
        if not entry.is_dir() or is_hidden(entry.name):
            continue
        parsed = _parse_entry(entry.name)
        if parsed is None:
            continue
        name, moment = parsed
        items.append(TrashedSkill(
            name=name,
            timestamp=format_stamp(moment),
            date=moment.isoformat(),
            size=dir_size(entry),
            path=str(entry),
        ))
    items.sort(key=lambda t: t.timestamp, reverse=True)
    return items


def find_in_trash(trash_root: Path, name: str) -> TrashedSkill:
    """Newest trash entry with that name."""
    for item in list_trash(trash_root):
        if item.name == name:
            return item
    raise NotFoundError(f"'{name}' not found in trash")


def restore_from_trash(trash_root: Path, name: str, source: Path, force: bool = False, now: datetime | None = None) -> Path:
    """Move the newest trashed ``name`` back to ``source/<relPath>``.

    A name collision with an active skill is a conflict. With ``force`` the
    active copy is moved to the trash first, so nothing is lost.
    """
    item = find_in_trash(trash_root, name)
    dest = source / rel_from_flat(name)

    if dest.exists() or dest.is_symlink():
        if not force:
            raise ConflictError(f"'{name}' already exists in source (use force to replace it)")
        move_to_trash(dest, name, trash_root, now=now)

    dest.parent.mkdir(parents=True, exist_ok=True)
    _move(Path(item.path), dest)
    logger.info("Restored '%s' from trash", name)
    return dest


def delete_from_trash(trash_root: Path, name: str) -> int:
    """Permanently delete every trash entry with that name."""
    matches = [item for item in list_trash(trash_root) if item.name == name]
    if not matches:
        raise NotFoundError(f"'{name}' not found in trash")
    for item in matches:
        shutil.rmtree(item.path)
    return len(matches)


def empty_trash(trash_root: Path) -> int:
    items = list_trash(trash_root)
    for item in items:
        shutil.rmtree(item.path)
    logger.info("Emptied trash (%d entries)", len(items))
    return len(items)


def cleanup_trash(trash_root: Path, max_age: timedelta = DEFAULT_MAX_AGE, now: datetime | None = None) -> int:
    """Purge entries older than max_age. Returns count removed."""
    now = now or now_utc()
    removed = 0
    for item in list_trash(trash_root):
        moment = parse_stamp(item.timestamp)
        if moment is not None and now - moment > max_age:
            shutil.rmtree(item.path)
            removed += 1
    if removed:
        logger.info("Purged %d expired trash entries", removed)
    return removed
