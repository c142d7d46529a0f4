"""Target registry: configured sync destinations and their on-disk status."""

import logging
import os
import re
from pathlib import Path

from skillshare.config import SYNC_MODES, SkillshareConfig, TargetConfig
from skillshare.core.errors import ConflictError, InvalidInputError, NotFoundError
from skillshare.core.files import atomic_copy_dir, is_hidden, link_is_under, link_points_to
from skillshare.core.filters import filter_skills, validate_patterns
from skillshare.core.manifest import read_manifest, remove_manifest
from skillshare.models import Skill, TargetInfo

logger = logging.getLogger("skillshare.targets")

STATUS_LINKED = "linked"
STATUS_NOT_EXIST = "not exist"
STATUS_HAS_FILES = "has files"
STATUS_CONFLICT = "conflict"
STATUS_BROKEN = "broken"
STATUS_MERGED = "merged"
STATUS_COPIED = "copied"
STATUS_UNKNOWN = "unknown"

# Well-known skill directories of AI coding tools
KNOWN_TARGETS: dict[str, Path] = {
    "claude": Path.home() / ".claude" / "skills",
    "codex": Path.home() / ".codex" / "skills",
    "cursor": Path.home() / ".cursor" / "skills",
    "gemini": Path.home() / ".gemini" / "skills",
    "copilot": Path.home() / ".copilot" / "skills",
    "opencode": Path.home() / ".config" / "opencode" / "skills",
    "windsurf": Path.home() / ".codeium" / "windsurf" / "skills",
    "goose": Path.home() / ".config" / "goose" / "skills",
}

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def get_target(cfg: SkillshareConfig, name: str) -> TargetConfig:
    if name not in cfg.targets:
        raise NotFoundError(f"target not found: {name}")
    return cfg.targets[name]


def _check_mode(mode: str) -> None:
    if mode and mode not in SYNC_MODES:
        raise InvalidInputError(f"invalid sync mode '{mode}' (expected one of {', '.join(SYNC_MODES)})")


def add_target(
    cfg: SkillshareConfig,
    name: str,
    path: str,
    mode: str = "",
    include: list[str] | None = None,
    exclude: list[str] | None = None,
) -> TargetConfig:
    """Register a target in cfg. The caller persists the config."""
    if not name or not _NAME_RE.match(name):
        raise InvalidInputError(f"invalid target name: {name!r}")
    if not path:
        raise InvalidInputError("target path is required")
    if name in cfg.targets:
        raise ConflictError(f"target already exists: {name}")
    _check_mode(mode)

    target = TargetConfig(
        path=path,
        mode=mode,
        include=validate_patterns(include or []),
        exclude=validate_patterns(exclude or []),
    )
    cfg.targets[name] = target
    logger.info("Added target '%s' → %s", name, path)
    return target


def update_target(
    cfg: SkillshareConfig,
    name: str,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
    mode: str | None = None,
) -> TargetConfig:
    """Change a target's filters or mode. ``None`` leaves a field unchanged."""
    target = get_target(cfg, name)
    if include is not None:
        target.include = validate_patterns(include)
    if exclude is not None:
        target.exclude = validate_patterns(exclude)
    if mode is not None:
        _check_mode(mode)
        target.mode = mode
    return target


def remove_target(cfg: SkillshareConfig, name: str) -> TargetConfig:
    """Unregister a target and detach it from the source.

    Skill links are replaced with real copies so the tool keeps working;
    copy-mode targets just lose their manifest.
    """
    target = get_target(cfg, name)
    mode = cfg.target_mode(name)
    path = Path(target.path).expanduser()
    source = cfg.source_path

    if mode == "symlink":
        if path.is_symlink() and link_points_to(path, source):
            path.unlink()
            atomic_copy_dir(source, path)
    elif mode == "copy":
        if path.is_dir():
            remove_manifest(path)
    elif path.is_dir() and not path.is_symlink():
        for entry in path.iterdir():
            if entry.is_symlink() and link_is_under(entry, source) and entry.exists():
                real = entry.resolve()
                atomic_copy_dir(real, entry)

    del cfg.targets[name]
    logger.info("Removed target '%s'", name)
    return target


def check_status(path: Path, mode: str, source: Path) -> str:
    """On-disk status of a target for its mode."""
    try:
        st_is_link = path.is_symlink()
        exists = path.exists() or st_is_link
    except PermissionError:
        return STATUS_BROKEN
    except OSError:
        return STATUS_UNKNOWN

    if not exists:
        return STATUS_NOT_EXIST

    if st_is_link:
        if not path.exists():
            return STATUS_BROKEN
        if link_points_to(path, source):
            return STATUS_LINKED
        return STATUS_CONFLICT

    if not path.is_dir():
        return STATUS_CONFLICT

    if mode == "symlink":
        return STATUS_HAS_FILES

    try:
        linked, local = count_entries(path, mode, source)
    except PermissionError:
        return STATUS_BROKEN
    if linked == 0 and local > 0:
        return STATUS_HAS_FILES
    return STATUS_COPIED if mode == "copy" else STATUS_MERGED


def count_entries(path: Path, mode: str, source: Path) -> tuple[int, int]:
    """(skillshare-managed, local) entry counts in a target directory."""
    if not path.is_dir() or path.is_symlink():
        return 0, 0

    managed = read_manifest(path).managed if mode == "copy" else {}
    linked = local = 0
    for entry in path.iterdir():
        if is_hidden(entry.name):
            continue
        if entry.is_symlink():
            if mode != "copy" and link_is_under(entry, source):
                linked += 1
            continue
        if not entry.is_dir():
            continue
        if mode == "copy" and entry.name in managed:
            linked += 1
        else:
            local += 1
    return linked, local


def target_info(cfg: SkillshareConfig, name: str, skills: list[Skill]) -> TargetInfo:
    """Status, counts and drift of one target."""
    target = get_target(cfg, name)
    mode = cfg.target_mode(name)
    path = Path(target.path).expanduser()
    source = cfg.source_path

    status = check_status(path, mode, source)
    expected = len(filter_skills(skills, name, target.include, target.exclude))

    linked = local = 0
    if mode == "symlink":
        if status == STATUS_LINKED:
            linked = expected
    elif status in (STATUS_MERGED, STATUS_COPIED, STATUS_HAS_FILES):
        linked, local = count_entries(path, mode, source)

    drift = mode in ("merge", "copy") and status in (STATUS_MERGED, STATUS_COPIED) and linked < expected

    return TargetInfo(
        name=name,
        path=target.path,
        mode=mode,
        status=status,
        linked_count=linked,
        local_count=local,
        expected_skill_count=expected,
        include=target.include,
        exclude=target.exclude,
        drift=drift,
    )


def list_targets(cfg: SkillshareConfig, skills: list[Skill]) -> list[TargetInfo]:
    return [target_info(cfg, name, skills) for name in sorted(cfg.targets)]


def available_targets(cfg: SkillshareConfig) -> list[dict]:
    """Known tool skill directories, flagged if installed or already configured."""
    configured = {os.path.normpath(str(Path(t.path).expanduser())) for t in cfg.targets.values()}
    result = []
    for name, path in sorted(KNOWN_TARGETS.items()):
        result.append({
            "name": name,
            "path": str(path),
            "installed": path.parent.is_dir(),
            "configured": name in cfg.targets or os.path.normpath(str(path)) in configured,
        })
    return result
