"""Collect engine: pull skills authored directly in a target back into the source."""

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

from skillshare.config import SkillshareConfig
from skillshare.core.errors import InvalidInputError
from skillshare.core.files import atomic_copy_dir, dir_size, is_hidden, now_iso
from skillshare.core.manifest import read_manifest
from skillshare.core.store import write_meta
from skillshare.core.targets import get_target
from skillshare.models import CollectResult, CollectScan, CollectTarget, LocalSkillInfo, SkillMeta

logger = logging.getLogger("skillshare.collect")


def find_local_skills(target_name: str, target_path: Path, mode: str) -> list[LocalSkillInfo]:
    """Real, visible directories in a target that skillshare does not manage."""
    if target_path.is_symlink() or not target_path.is_dir():
        return []

    managed = read_manifest(target_path).managed if mode == "copy" else {}
    found = []
    for entry in sorted(target_path.iterdir()):
        if is_hidden(entry.name) or entry.is_symlink() or not entry.is_dir():
            continue
        if entry.name in managed:
            continue
        mtime = datetime.fromtimestamp(entry.stat().st_mtime, tz=timezone.utc)
        found.append(LocalSkillInfo(
            name=entry.name,
            path=str(entry),
            target_name=target_name,
            size=dir_size(entry),
            mod_time=mtime.isoformat(),
        ))
    return found


def collect_scan(cfg: SkillshareConfig, target: str | None = None) -> CollectScan:
    names = [target] if target else sorted(cfg.targets)
    scan = CollectScan()
    for name in names:
        tc = get_target(cfg, name)
        skills = find_local_skills(name, Path(tc.path).expanduser(), cfg.target_mode(name))
        if skills:
            scan.targets.append(CollectTarget(target_name=name, skills=skills))
            scan.total_count += len(skills)
    return scan


def collect(cfg: SkillshareConfig, selections: list[dict], force: bool = False) -> CollectResult:
    """Copy selected local skills into the source directory.

    ``selections`` is a list of ``{"name", "targetName"}``. Each one is looked
    up in its own target; failures are recorded per skill.
    """
    for sel in selections:
        if not sel.get("name") or not sel.get("targetName"):
            raise InvalidInputError("each skill needs 'name' and 'targetName'")
        get_target(cfg, sel["targetName"])

    source = cfg.source_path
    result = CollectResult()
    pulled_now: set[str] = set()

    for sel in selections:
        name, target_name = sel["name"], sel["targetName"]
        tc = cfg.targets[target_name]
        src = Path(tc.path).expanduser() / name
        dest = source / name

        try:
            if is_hidden(name) or "/" in name or ".." in name:
                raise InvalidInputError(f"invalid skill name: {name}")
            if src.is_symlink() or not src.is_dir():
                raise FileNotFoundError(f"not a local skill in {target_name}: {name}")
            if dest.exists() or dest.is_symlink() or name in pulled_now:
                if not force or name in pulled_now:
                    result.skipped.append(name)
                    continue

            atomic_copy_dir(src, dest)
            write_meta(dest, SkillMeta(source=str(src), type="collected", installed_at=now_iso()))
            result.pulled.append(name)
            pulled_now.add(name)
            logger.info("Collected '%s' from %s", name, target_name)
        except (OSError, shutil.Error, InvalidInputError) as e:
            logger.warning("Collect '%s' from %s failed: %s", name, target_name, e)
            result.failed[name] = str(e)

    return result
