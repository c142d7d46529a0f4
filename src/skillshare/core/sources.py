"""Install source parsing: local paths, GitHub references and git URLs."""

import re
from dataclasses import dataclass
from pathlib import Path

from skillshare.core.errors import InvalidInputError

_GITHUB_RE = re.compile(r"^(?:https?://)?github\.com/([^/]+)/([^/]+?)(?:\.git)?(?:/(.+))?$")
_GIT_SSH_RE = re.compile(r"^git@([^:]+):([^/]+)/(.+?)(?:\.git)?$")
_GIT_HTTPS_RE = re.compile(r"^https?://([^/]+)/([^/]+)/([^/]+?)(?:\.git)?(?:/(.+))?$")
_SHORTHAND_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+(?:/.+)?$")
_BRANCH_PREFIX_RE = re.compile(r"^(?:tree|blob)/[^/]+/?")


@dataclass
class Source:
    """A parsed install source.

    ``type`` is "local", "github", "github-subdir" or "git".
    """

    raw: str
    type: str
    name: str
    clone_url: str = ""
    subdir: str = ""
    path: str = ""

    @property
    def is_git(self) -> bool:
        return self.type != "local"

    @property
    def repo_url(self) -> str:
        return self.clone_url


def _is_local(text: str) -> bool:
    return text.startswith(("/", "~", "./", "../"))


def _github(owner: str, repo: str, subdir: str | None, raw: str) -> Source:
    subdir = _BRANCH_PREFIX_RE.sub("", (subdir or "").strip("/"))
    name = subdir.rstrip("/").rsplit("/", 1)[-1] if subdir else repo
    return Source(
        raw=raw,
        type="github-subdir" if subdir else "github",
        name=name,
        clone_url=f"https://github.com/{owner}/{repo}.git",
        subdir=subdir,
    )


def parse_source(text: str) -> Source:
    """Parse a user-supplied source reference."""
    raw = (text or "").strip()
    if not raw:
        raise InvalidInputError("source is required")

    if _is_local(raw):
        path = Path(raw).expanduser().resolve()
        return Source(raw=raw, type="local", name=path.name, path=str(path))

    if raw.startswith("file://"):
        # file:///path/repo.git#sub/dir selects a subdirectory
        url, _, subdir = raw.partition("#")
        subdir = subdir.strip("/")
        name = Path(url[len("file://"):].rstrip("/")).name
        if name.endswith(".git"):
            name = name[:-4]
        if subdir:
            name = subdir.rsplit("/", 1)[-1]
        return Source(raw=raw, type="git", name=name, clone_url=url, subdir=subdir)

    match = _GITHUB_RE.match(raw)
    if match:
        return _github(match.group(1), match.group(2), match.group(3), raw)

    match = _GIT_SSH_RE.match(raw)
    if match:
        repo = match.group(3).rsplit("/", 1)[-1]
        return Source(raw=raw, type="git", name=repo, clone_url=raw)

    match = _GIT_HTTPS_RE.match(raw)
    if match:
        host, owner, repo, subdir = match.groups()
        return Source(
            raw=raw,
            type="git",
            name=subdir.rstrip("/").rsplit("/", 1)[-1] if subdir else repo,
            clone_url=f"https://{host}/{owner}/{repo}.git",
            subdir=(subdir or "").strip("/"),
        )

    if _SHORTHAND_RE.match(raw):
        owner, rest = raw.split("/", 1)
        repo, _, subdir = rest.partition("/")
        return _github(owner, repo, subdir, raw)

    raise InvalidInputError(f"unrecognized source: {raw}")
