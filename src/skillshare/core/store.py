"""Skill repository store: the source directory as the single source of truth.

A skill is any directory below the source root that holds a ``SKILL.md``.
Directories at the top level whose name starts with ``_`` are tracked git
repositories holding several skills.
"""

import json
import logging
import mimetypes
import os
import re
from pathlib import Path

import yaml

from skillshare.core.errors import InvalidInputError, NotFoundError
from skillshare.core.files import is_hidden
from skillshare.models import Skill, SkillMeta, TrackedRepo

logger = logging.getLogger("skillshare.store")

SKILL_FILE = "SKILL.md"
META_FILE = ".skillshare-meta.json"
FLAT_SEP = "__"

_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---", re.DOTALL)


def flat_name(rel_path: str) -> str:
    return rel_path.replace("/", FLAT_SEP)


def rel_from_flat(name: str) -> str:
    return name.replace(FLAT_SEP, "/")


def is_repo_path(rel_path: str) -> bool:
    return rel_path.split("/", 1)[0].startswith("_")


def read_frontmatter(skill_md: Path) -> dict:
    """YAML frontmatter of a SKILL.md as a dict (empty if absent or invalid)."""
    try:
        content = skill_md.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return {}
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return {}
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.warning("Invalid frontmatter in %s: %s", skill_md, e)
        return {}
    return data if isinstance(data, dict) else {}


def read_meta(skill_dir: Path) -> SkillMeta | None:
    path = skill_dir / META_FILE
    if not path.exists():
        return None
    try:
        return SkillMeta.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError) as e:
        logger.warning("Failed to load meta for %s: %s", skill_dir.name, e)
        return None


def write_meta(skill_dir: Path, meta: SkillMeta) -> None:
    (skill_dir / META_FILE).write_text(meta.model_dump_json(by_alias=True, indent=2), encoding="utf-8")


def _build_skill(source: Path, skill_dir: Path) -> Skill:
    rel = skill_dir.relative_to(source).as_posix()
    fm = read_frontmatter(skill_dir / SKILL_FILE)
    meta = read_meta(skill_dir) or SkillMeta()

    targets = fm.get("targets")
    if isinstance(targets, str):
        targets = [t.strip() for t in targets.split(",") if t.strip()]
    elif not isinstance(targets, list):
        targets = None

    return Skill(
        name=skill_dir.name,
        flat_name=flat_name(rel),
        rel_path=rel,
        source_path=str(skill_dir),
        is_in_repo=is_repo_path(rel),
        installed_at=meta.installed_at,
        source=meta.source,
        type=meta.type,
        repo_url=meta.repo_url,
        version=meta.version or str(fm.get("version", "")),
        description=str(fm.get("description", "")),
        targets=[str(t) for t in targets] if targets is not None else None,
    )


def discover_skills(source: Path) -> list[Skill]:
    """Walk the source tree and return every skill, sorted by flat name."""
    if not source.is_dir():
        return []

    skills: list[Skill] = []
    for root, dirs, files in os.walk(source):
        dirs[:] = sorted(d for d in dirs if d != ".git" and not is_hidden(d))
        root_path = Path(root)
        if root_path == source:
            continue
        if SKILL_FILE in files:
            skills.append(_build_skill(source, root_path))

    skills.sort(key=lambda s: s.flat_name)
    return skills


def get_skill(source: Path, name: str) -> Skill:
    """Find a skill by flat name (or plain directory name when unambiguous)."""
    skills = discover_skills(source)
    for skill in skills:
        if skill.flat_name == name:
            return skill
    by_dir = [s for s in skills if s.name == name]
    if len(by_dir) == 1:
        return by_dir[0]
    raise NotFoundError(f"skill not found: {name}")


def list_skill_files(skill: Skill) -> list[dict]:
    """Files of a skill, relative to its directory."""
    root = Path(skill.source_path)
    files = []
    for dirpath, dirs, names in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d != ".git")
        for name in sorted(names):
            if name == META_FILE:
                continue
            fp = Path(dirpath) / name
            files.append({
                "path": fp.relative_to(root).as_posix(),
                "size": fp.lstat().st_size,
            })
    return files


def read_skill_file(skill: Skill, filepath: str) -> dict:
    """Read one file of a skill; paths escaping the skill directory are rejected."""
    root = Path(skill.source_path).resolve()
    target = (root / filepath).resolve()
    if target != root and root not in target.parents:
        raise InvalidInputError("invalid file path")
    if not target.is_file():
        raise NotFoundError(f"file not found: {filepath}")

    content_type = mimetypes.guess_type(target.name)[0] or "text/plain"
    if target.suffix.lower() == ".md":
        content_type = "text/markdown"
    return {
        "content": target.read_text(encoding="utf-8", errors="replace"),
        "contentType": content_type,
        "filename": target.name,
    }


def tracked_repo_dirs(source: Path) -> list[Path]:
    """Top-level ``_name`` directories that are git repositories."""
    if not source.is_dir():
        return []
    return sorted(
        p for p in source.iterdir()
        if p.is_dir() and p.name.startswith("_") and (p / ".git").exists()
    )


def list_tracked_repos(source: Path) -> list[TrackedRepo]:
    from skillshare.core.gitops import is_dirty

    skills = discover_skills(source)
    repos = []
    for repo_dir in tracked_repo_dirs(source):
        prefix = repo_dir.name + "/"
        repos.append(TrackedRepo(
            name=repo_dir.name,
            skill_count=sum(1 for s in skills if s.rel_path.startswith(prefix)),
            dirty=is_dirty(repo_dir),
        ))
    return repos


def repo_root_for(source: Path, skill: Skill) -> Path | None:
    """The tracked repository directory a skill belongs to, if any."""
    if not skill.is_in_repo:
        return None
    return source / skill.rel_path.split("/", 1)[0]
