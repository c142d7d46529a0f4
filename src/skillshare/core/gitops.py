"""Git integration for the source directory: status, push and pull."""

import logging
import subprocess
from pathlib import Path

from skillshare.config import settings
from skillshare.core.errors import ConflictError, InvalidInputError, IOFailureError

logger = logging.getLogger("skillshare.git")

DEFAULT_COMMIT_MESSAGE = "Update skills"


def _git(repo: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(repo),
            capture_output=True,
            text=True,
            timeout=settings.git_timeout,
        )
    except FileNotFoundError as e:
        raise IOFailureError("git is not installed") from e
    except subprocess.TimeoutExpired as e:
        raise IOFailureError(f"git {args[0]} timed out") from e
    if check and proc.returncode != 0:
        logger.error("git %s failed: %s", args[0], proc.stderr.strip())
        raise IOFailureError(f"git {args[0]} failed: {proc.stderr.strip() or proc.stdout.strip()}")
    return proc


def is_repo(path: Path) -> bool:
    return (path / ".git").exists()


def changed_files(repo: Path) -> list[str]:
    out = _git(repo, "status", "--porcelain").stdout
    return [line[3:] for line in out.splitlines() if line.strip()]


def is_dirty(repo: Path) -> bool:
    if not is_repo(repo):
        return False
    try:
        return bool(changed_files(repo))
    except IOFailureError:
        return False


def git_status(source: Path) -> dict:
    """Repository status of the source directory."""
    status = {
        "isRepo": False,
        "hasRemote": False,
        "branch": "",
        "isDirty": False,
        "files": [],
        "sourceDir": str(source),
    }
    if not source.is_dir() or not is_repo(source):
        return status

    status["isRepo"] = True
    status["hasRemote"] = bool(_git(source, "remote", check=False).stdout.strip())
    status["branch"] = _git(source, "rev-parse", "--abbrev-ref", "HEAD", check=False).stdout.strip()
    files = changed_files(source)
    status["files"] = files
    status["isDirty"] = bool(files)
    return status


def _require_remote(source: Path) -> None:
    if not is_repo(source):
        raise InvalidInputError(f"source is not a git repository: {source}")
    if not _git(source, "remote", check=False).stdout.strip():
        raise InvalidInputError("no git remote configured")


def push(source: Path, message: str = "", dry_run: bool = False) -> dict:
    """Stage everything, commit and push."""
    _require_remote(source)
    files = changed_files(source)
    if dry_run:
        return {"success": True, "message": f"would commit {len(files)} file(s) and push", "dryRun": True}

    if files:
        _git(source, "add", "-A")
        _git(source, "commit", "-m", message or DEFAULT_COMMIT_MESSAGE)
    _git(source, "push")
    logger.info("Pushed %d changed file(s)", len(files))
    return {"success": True, "message": f"pushed {len(files)} changed file(s)", "dryRun": False}


def pull(source: Path, dry_run: bool = False) -> dict:
    """Pull the source repository. Refuses to run with uncommitted changes."""
    _require_remote(source)
    if changed_files(source):
        raise ConflictError("source has uncommitted changes; commit or push first")
    if dry_run:
        return {"success": True, "upToDate": False, "commits": [], "dryRun": True}

    before = _git(source, "rev-parse", "HEAD", check=False).stdout.strip()
    _git(source, "pull", "--ff-only")
    after = _git(source, "rev-parse", "HEAD", check=False).stdout.strip()

    commits: list[dict] = []
    if before and after and before != after:
        log = _git(source, "log", "--format=%h%x09%s", f"{before}..{after}", check=False).stdout
        for line in log.splitlines():
            sha, _, subject = line.partition("\t")
            commits.append({"hash": sha, "message": subject})
    logger.info("Pulled %d new commit(s)", len(commits))
    return {"success": True, "upToDate": before == after, "commits": commits, "dryRun": False}
