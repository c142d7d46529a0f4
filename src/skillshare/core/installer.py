"""Skill installation pipeline: fetch, discover, audit, install.

Pipeline per skill:
1. Fetch the source (local path, or shallow git clone to a temp dir)
2. Stage a copy beside the destination
3. Security audit of the staged copy (blocks unless force / skipAudit)
4. Write install metadata and swap the staged copy into place
"""

import asyncio
import logging
import os
import re
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path

from skillshare.config import settings
from skillshare.core.audit import DEFAULT_THRESHOLD, Rule, scan_skill
from skillshare.core.errors import (
    AuditBlockedError,
    ConflictError,
    InvalidInputError,
    IOFailureError,
    NotFoundError,
    SkillshareError,
)
from skillshare.core.files import is_hidden, now_iso, replace_dir, stage_copy
from skillshare.core.sources import Source, parse_source
from skillshare.core.store import (
    SKILL_FILE,
    discover_skills,
    read_frontmatter,
    read_meta,
    tracked_repo_dirs,
    write_meta,
)
from skillshare.core.trash import move_to_trash
from skillshare.models import (
    BatchInstallItem,
    BatchInstallResult,
    DiscoveredSkill,
    DiscoveryResult,
    InstallResult,
    SkillMeta,
    UpdateItem,
)

logger = logging.getLogger("skillshare.installer")

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


async def _run_git(*args: str, cwd: Path | None = None) -> str:
    """Run git and return stdout. Raises IOFailureError on failure or timeout."""
    process = await asyncio.create_subprocess_exec(
        "git",
        *args,
        cwd=str(cwd) if cwd else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=settings.git_timeout)
    except asyncio.TimeoutError as e:
        process.kill()
        raise IOFailureError(f"git {args[0]} timed out") from e
    if process.returncode != 0:
        logger.error("git %s failed: %s", args[0], stderr.decode().strip())
        raise IOFailureError(f"git {args[0]} failed: {stderr.decode().strip()}")
    return stdout.decode()


async def _clone_repo(url: str, dest: Path, shallow: bool = True) -> None:
    """Clone a git repository."""
    args = ["clone", "--quiet"]
    if shallow:
        args += ["--depth", "1"]
    await _run_git(*args, url, str(dest))
    logger.info("Cloned: %s", url)


async def _head_commit(repo: Path) -> str:
    try:
        return (await _run_git("rev-parse", "--short", "HEAD", cwd=repo)).strip()
    except IOFailureError:
        return ""


@asynccontextmanager
async def fetched(source: Source):
    """Yield (content root, commit) for a source; git clones are removed afterwards."""
    if not source.is_git:
        root = Path(source.path)
        if not root.is_dir():
            raise NotFoundError(f"source path does not exist: {source.path}")
        yield root, ""
        return

    temp_dir = Path(tempfile.mkdtemp(prefix="skillshare-clone-"))
    try:
        repo = temp_dir / "repo"
        await _clone_repo(source.clone_url, repo)
        commit = await _head_commit(repo)
        root = repo / source.subdir if source.subdir else repo
        if not root.is_dir():
            raise NotFoundError(f"subdirectory not found in repository: {source.subdir}")
        yield root, commit
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def discover_in(root: Path, default_name: str) -> list[DiscoveredSkill]:
    """Every directory under root holding a SKILL.md (root itself included)."""
    found: list[DiscoveredSkill] = []
    for dirpath, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d != ".git" and not is_hidden(d))
        if SKILL_FILE not in files:
            continue
        current = Path(dirpath)
        rel = current.relative_to(root).as_posix()
        name = default_name if rel == "." else current.name
        found.append(DiscoveredSkill(name=name, path=rel))
    return found


async def discover(source_text: str) -> DiscoveryResult:
    """List candidate skills in a source without installing anything."""
    source = parse_source(source_text)
    async with fetched(source) as (root, _):
        skills = discover_in(root, source.name)
    return DiscoveryResult(source=source.raw, needs_selection=len(skills) > 1, skills=skills)


def _version_key(version: str) -> tuple[int, ...] | None:
    parts = version.strip().lstrip("v").split(".")
    if not parts or not all(p.isdigit() for p in parts):
        return None
    return tuple(int(p) for p in parts)


def is_newer(candidate: str, installed: str) -> bool:
    """Dotted versions compare numerically; anything else is newer when different."""
    if not candidate:
        return False
    if not installed:
        return True
    a, b = _version_key(candidate), _version_key(installed)
    if a is not None and b is not None:
        return a > b
    return candidate != installed


def _validate_name(name: str) -> None:
    if not name or not _NAME_RE.match(name):
        raise InvalidInputError(f"invalid skill name: {name!r}")


def _resolve_into(source_root: Path, into: str) -> Path:
    base = (source_root / into).resolve() if into else source_root.resolve()
    if base != source_root.resolve() and source_root.resolve() not in base.parents:
        raise InvalidInputError(f"invalid install directory: {into}")
    return base


def install_from_dir(
    skill_src: Path,
    name: str,
    source_root: Path,
    meta: SkillMeta,
    force: bool = False,
    skip_audit: bool = False,
    into: str = "",
    rules: list[Rule] | None = None,
    threshold: str = DEFAULT_THRESHOLD,
) -> InstallResult:
    """Install one skill directory into the source tree."""
    _validate_name(name)
    dest = _resolve_into(source_root, into) / name
    version = meta.version

    if dest.exists() or dest.is_symlink():
        installed = read_meta(dest) or SkillMeta()
        if force:
            action = "reinstalled"
        elif is_newer(version, installed.version):
            action = "updated"
        else:
            return InstallResult(skill_name=name, action="skipped", path=str(dest), warnings=["already installed"])
    else:
        action = "cloned" if meta.type in ("github", "github-subdir", "git") else "copied"

    warnings: list[str] = []
    staged = stage_copy(skill_src, dest)
    try:
        if not (staged / SKILL_FILE).exists():
            warnings.append(f"no {SKILL_FILE} found in {name}")

        audit_result = None
        if skip_audit:
            warnings.append("audit skipped")
        else:
            audit_result = scan_skill(staged, name, rules, threshold)
            if audit_result.is_blocked:
                if not force:
                    raise AuditBlockedError(
                        f"security audit failed: findings at/above {audit_result.threshold} "
                        f"(risk {audit_result.risk_score}, {audit_result.risk_label}); "
                        "use force or skipAudit to override"
                    )
                warnings.append(f"security audit found issues at/above {audit_result.threshold} (installed with force)")

        write_meta(staged, meta.model_copy(update={"installed_at": now_iso()}))
        replace_dir(staged, dest)
    finally:
        shutil.rmtree(staged.parent, ignore_errors=True)

    logger.info("Installed '%s' → %s (%s)", name, dest, action)
    return InstallResult(skill_name=name, action=action, path=str(dest), warnings=warnings, audit=audit_result)


def _meta_for(source: Source, skill_dir: Path, commit: str, rel: str = ".") -> SkillMeta:
    version = commit or str(read_frontmatter(skill_dir / SKILL_FILE).get("version", ""))
    base = source.raw if source.is_git else source.path
    raw = base if rel == "." else _join_source(base, rel)
    return SkillMeta(source=raw, type=source.type, repo_url=source.repo_url, version=version)


def _join_source(base: str, rel: str) -> str:
    if base.startswith("file://"):
        sep = "/" if "#" in base else "#"
        return f"{base}{sep}{rel}"
    return f"{base.rstrip('/')}/{rel}"


async def install(
    source_root: Path,
    source_text: str,
    name: str | None = None,
    force: bool = False,
    skip_audit: bool = False,
    track: bool = False,
    into: str = "",
    rules: list[Rule] | None = None,
    threshold: str = DEFAULT_THRESHOLD,
) -> InstallResult:
    """Install a single skill (or a tracked repo with ``track``)."""
    source = parse_source(source_text)
    if track:
        return await track_repo(source_root, source, name=name, force=force, skip_audit=skip_audit, rules=rules, threshold=threshold)

    async with fetched(source) as (root, commit):
        if (root / SKILL_FILE).exists():
            rel = "."
        else:
            found = discover_in(root, source.name)
            if not found:
                raise NotFoundError(f"no skills found in {source.raw}")
            if len(found) > 1:
                raise InvalidInputError(
                    f"found {len(found)} skills in {source.raw}; select them with discover and install in batch"
                )
            rel = found[0].path
        skill_dir = root / rel
        return install_from_dir(
            skill_dir,
            name or (source.name if rel == "." else skill_dir.name),
            source_root,
            _meta_for(source, skill_dir, commit, rel),
            force=force,
            skip_audit=skip_audit,
            into=into,
            rules=rules,
            threshold=threshold,
        )


async def install_batch(
    source_root: Path,
    source_text: str,
    skills: list[dict],
    force: bool = False,
    skip_audit: bool = False,
    into: str = "",
    rules: list[Rule] | None = None,
    threshold: str = DEFAULT_THRESHOLD,
) -> BatchInstallResult:
    """Install selected skills from one source; each skill succeeds or fails alone."""
    if not skills:
        raise InvalidInputError("no skills selected")
    source = parse_source(source_text)
    results: list[BatchInstallItem] = []

    async with fetched(source) as (root, commit):
        resolved_root = root.resolve()
        for item in skills:
            name = item.get("name", "")
            try:
                rel = item.get("path") or "."
                skill_dir = (root / rel).resolve()
                if skill_dir != resolved_root and resolved_root not in skill_dir.parents:
                    raise InvalidInputError(f"invalid skill path: {rel}")
                if not skill_dir.is_dir():
                    raise NotFoundError(f"skill path not found: {rel}")
                result = install_from_dir(
                    skill_dir, name, source_root, _meta_for(source, skill_dir, commit, rel),
                    force=force, skip_audit=skip_audit, into=into, rules=rules, threshold=threshold,
                )
                results.append(BatchInstallItem(name=name, action=result.action, warnings=result.warnings or None))
            except (SkillshareError, OSError, shutil.Error) as e:
                logger.warning("Batch install of '%s' failed: %s", name, e)
                results.append(BatchInstallItem(name=name, error=str(e)))

    installed = sum(1 for r in results if r.error is None)
    summary = f"Installed {installed} of {len(results)} skills"
    if installed < len(results):
        summary += " (some errors)"
    return BatchInstallResult(results=results, summary=summary)


def _add_gitignore(source_root: Path, entry: str) -> None:
    path = source_root / ".gitignore"
    lines = path.read_text(encoding="utf-8").splitlines() if path.exists() else []
    if entry not in lines:
        lines.append(entry)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _remove_gitignore(source_root: Path, entry: str) -> None:
    path = source_root / ".gitignore"
    if not path.exists():
        return
    lines = [l for l in path.read_text(encoding="utf-8").splitlines() if l != entry]
    path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")


def repo_dir_name(name: str) -> str:
    return name if name.startswith("_") else f"_{name}"


async def track_repo(
    source_root: Path,
    source: Source,
    name: str | None = None,
    force: bool = False,
    skip_audit: bool = False,
    rules: list[Rule] | None = None,
    threshold: str = DEFAULT_THRESHOLD,
) -> InstallResult:
    """Clone a git source as a tracked multi-skill repository (``_name``)."""
    if not source.is_git:
        raise InvalidInputError("--track requires a git source")
    dir_name = repo_dir_name(name or source.name)
    _validate_name(dir_name.lstrip("_"))
    dest = source_root / dir_name
    if dest.exists() and not force:
        raise ConflictError(f"tracked repo already exists: {dir_name} (use update to pull)")

    source_root.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f".{dir_name}.tmp-", dir=source_root))
    try:
        staged = staging / "repo"
        await _clone_repo(source.clone_url, staged, shallow=False)

        warnings: list[str] = []
        audit_result = None
        if skip_audit:
            warnings.append("audit skipped")
        else:
            audit_result = scan_skill(staged, dir_name, rules, threshold)
            if audit_result.is_blocked and not force:
                raise AuditBlockedError(
                    f"security audit failed: findings at/above {audit_result.threshold} "
                    f"(risk {audit_result.risk_score}, {audit_result.risk_label}); "
                    "use force or skipAudit to override"
                )
        replace_dir(staged, dest)
    finally:
        shutil.rmtree(staging, ignore_errors=True)

    _add_gitignore(source_root, f"{dir_name}/")
    count = sum(1 for s in discover_skills(source_root) if s.rel_path.startswith(dir_name + "/") or s.rel_path == dir_name)
    logger.info("Tracked repo '%s' cloned with %d skills", dir_name, count)
    return InstallResult(skill_name=dir_name, action="cloned", path=str(dest), warnings=warnings, audit=audit_result)


def uninstall_repo(source_root: Path, name: str, trash_root: Path) -> Path:
    """Move a tracked repository to the trash and drop its .gitignore entry."""
    dir_name = repo_dir_name(name)
    dest = source_root / dir_name
    if not dest.is_dir() or "/" in dir_name:
        raise NotFoundError(f"tracked repo not found: {dir_name}")
    trashed = move_to_trash(dest, dir_name, trash_root)
    _remove_gitignore(source_root, f"{dir_name}/")
    return trashed


async def _update_repo(repo: Path, force: bool) -> UpdateItem:
    from skillshare.core.gitops import is_dirty

    item = UpdateItem(name=repo.name, is_repo=True)
    if is_dirty(repo) and not force:
        item.action = "error"
        item.message = "uncommitted changes (use force to discard)"
        return item
    if force:
        await _run_git("checkout", "--", ".", cwd=repo)
    before = await _head_commit(repo)
    await _run_git("pull", "--ff-only", "--quiet", cwd=repo)
    after = await _head_commit(repo)
    item.action = "up-to-date" if before == after else "pulled"
    item.message = f"{before}..{after}" if before != after else ""
    return item


async def update(
    source_root: Path,
    name: str | None = None,
    update_all: bool = False,
    force: bool = False,
    skip_audit: bool = False,
    rules: list[Rule] | None = None,
    threshold: str = DEFAULT_THRESHOLD,
) -> list[UpdateItem]:
    """Refresh installed skills from their recorded sources, and pull tracked repos."""
    if not name and not update_all:
        raise InvalidInputError("specify a skill name or all")

    repos = tracked_repo_dirs(source_root)
    skills = [s for s in discover_skills(source_root) if not s.is_in_repo and s.source and s.type != "collected"]

    if name:
        repos = [r for r in repos if r.name in (name, repo_dir_name(name))]
        skills = [s for s in skills if name in (s.flat_name, s.name)]
        if not repos and not skills:
            raise NotFoundError(f"no updatable skill or tracked repo named '{name}'")

    items: list[UpdateItem] = []
    for repo in repos:
        try:
            items.append(await _update_repo(repo, force))
        except SkillshareError as e:
            items.append(UpdateItem(name=repo.name, action="error", is_repo=True, message=str(e)))

    for skill in skills:
        parent = skill.rel_path.rsplit("/", 1)[0] if "/" in skill.rel_path else ""
        try:
            result = await install(
                source_root, skill.source, name=skill.name, force=force,
                skip_audit=skip_audit, into=parent, rules=rules, threshold=threshold,
            )
            action = "up-to-date" if result.action == "skipped" else "updated"
            items.append(UpdateItem(name=skill.flat_name, action=action, message="; ".join(result.warnings)))
        except (SkillshareError, OSError) as e:
            items.append(UpdateItem(name=skill.flat_name, action="error", message=str(e)))
    return items
