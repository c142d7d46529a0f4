"""Filesystem helpers: copying, checksums, sizes and atomic swaps."""

import hashlib
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

STAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
STAMP_LEN = 19


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return now_utc().isoformat()


def format_stamp(moment: datetime) -> str:
    return moment.strftime(STAMP_FORMAT)


def parse_stamp(text: str) -> datetime | None:
    """Parse a YYYY-MM-DD_HH-MM-SS stamp (UTC). Returns None if malformed."""
    try:
        return datetime.strptime(text, STAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def is_empty_dir(path: Path) -> bool:
    return path.is_dir() and not any(path.iterdir())


def remove_path(path: Path) -> None:
    """Remove a symlink, file or directory tree."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def copy_dir(src: Path, dst: Path, skip_symlinks: bool = False, skip_git: bool = True) -> None:
    """Copy a directory tree. Symlinks are copied as links unless skipped."""

    def _ignore(directory: str, names: list[str]) -> set[str]:
        ignored = set()
        for name in names:
            if skip_git and name == ".git":
                ignored.add(name)
            elif skip_symlinks and os.path.islink(os.path.join(directory, name)):
                ignored.add(name)
        return ignored

    shutil.copytree(src, dst, symlinks=True, ignore=_ignore)


def dir_size(path: Path) -> int:
    """Total size in bytes of regular files below path (symlinks not followed)."""
    total = 0
    for root, dirs, files in os.walk(path):
        for name in files:
            fp = os.path.join(root, name)
            if not os.path.islink(fp):
                try:
                    total += os.path.getsize(fp)
                except OSError:
                    continue
    return total


def dir_checksum(path: Path) -> str:
    """SHA-256 over sorted (relpath, content) pairs. ``.git`` and symlinks skipped."""
    entries: list[tuple[str, Path]] = []
    for root, dirs, files in os.walk(path):
        dirs[:] = [d for d in dirs if d != ".git"]
        for name in files:
            fp = Path(root) / name
            if fp.is_symlink():
                continue
            entries.append((fp.relative_to(path).as_posix(), fp))
    entries.sort()

    digest = hashlib.sha256()
    for rel, fp in entries:
        digest.update(rel.encode())
        digest.update(b"\0")
        digest.update(fp.read_bytes())
        digest.update(b"\0")
    return digest.hexdigest()


def staging_dir(dest: Path) -> Path:
    """Fresh hidden directory beside dest, on the same filesystem."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f".{dest.name}.tmp-", dir=dest.parent))


def replace_dir(staged: Path, dest: Path) -> None:
    """Swap a staged directory into dest. The previous dest is restored on failure."""
    aside = None
    if dest.exists() or dest.is_symlink():
        aside = dest.with_name(f".{dest.name}.old-{os.getpid()}")
        if aside.exists() or aside.is_symlink():
            remove_path(aside)
        os.replace(dest, aside)
    try:
        os.replace(staged, dest)
    except OSError:
        if aside is not None:
            os.replace(aside, dest)
        raise
    if aside is not None:
        remove_path(aside)


def stage_copy(src: Path, dest: Path, skip_symlinks: bool = False) -> Path:
    """Copy src into a staging directory beside dest and return it."""
    staging = staging_dir(dest)
    staged = staging / "content"
    try:
        copy_dir(src, staged, skip_symlinks=skip_symlinks)
    except (OSError, shutil.Error):
        shutil.rmtree(staging, ignore_errors=True)
        raise
    return staged


def atomic_copy_dir(src: Path, dest: Path, skip_symlinks: bool = False) -> None:
    """Copy src over dest so that dest is either fully old or fully new."""
    staged = stage_copy(src, dest, skip_symlinks=skip_symlinks)
    try:
        replace_dir(staged, dest)
    finally:
        shutil.rmtree(staged.parent, ignore_errors=True)


def atomic_symlink(dest: Path, points_to: Path) -> None:
    """Point dest at points_to, replacing a link or file at dest atomically."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp = dest.with_name(f".{dest.name}.lnk-{os.getpid()}")
    if tmp.is_symlink() or tmp.exists():
        remove_path(tmp)
    os.symlink(points_to, tmp, target_is_directory=True)
    if dest.is_dir() and not dest.is_symlink():
        replace_dir(tmp, dest)
        return
    try:
        os.replace(tmp, dest)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def link_points_to(link: Path, expected: Path) -> bool:
    """True if the symlink resolves to the expected directory."""
    try:
        return link.resolve() == expected.resolve()
    except OSError:
        return False


def link_is_under(link: Path, root: Path) -> bool:
    """True if the symlink's target lies inside root (existing or not)."""
    raw = Path(os.readlink(link))
    if not raw.is_absolute():
        raw = link.parent / raw
    targets = {Path(os.path.normpath(raw)), raw.resolve()}
    roots = {Path(os.path.normpath(root.absolute())), root.resolve()}
    return any(t == r or r in t.parents for t in targets for r in roots)
