"""skillshare MCP server.

Manages one source directory of AI agent skills and keeps the skill
directories of many tools (targets) in sync with it:
- inventory: list_skills, get_skill, get_skill_file, delete_skill
- targets: list_targets, add_target, update_target, remove_target
- sync: sync, diff, collect_scan, collect
- safety: backup, list_backups, restore, trash, audit
- install: discover, install, install_batch, update, search_hub
- git: git_status, push, pull
"""

import asyncio
import json
import logging

from mcp.server.fastmcp import FastMCP

from skillshare.core.errors import SkillshareError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("skillshare.server")

mcp = FastMCP(
    "skillshare",
    instructions=(
        "Skillshare keeps one source directory of skills in sync with the skill "
        "directories of many AI tools. Run diff (or sync with dry_run=true) before "
        "sync to see what would change. Install runs a security audit first; a "
        "blocked install can be overridden with force or skip_audit only when the "
        "user agrees. Deleted skills go to a trash and can be restored for 7 days."
    ),
)


def _dump(payload) -> str:
    return json.dumps(payload, indent=2)


def _error(e: SkillshareError) -> str:
    logger.info("%s: %s", type(e).__name__, e)
    return _dump({"error": str(e), "status": e.status_code})


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


# -- inventory ---------------------------------------------------------------


@mcp.tool()
async def overview() -> str:
    """Source directory summary: skill counts, targets, global mode, tracked repos."""
    from skillshare.tools.skills import overview as _overview

    try:
        return _dump(await asyncio.to_thread(_overview))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def list_skills() -> str:
    """List every skill in the source directory with its install metadata."""
    from skillshare.tools.skills import list_skills as _list

    try:
        return _dump(await asyncio.to_thread(_list))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def get_skill(name: str) -> str:
    """Get one skill's metadata, SKILL.md content and file list.

    Args:
        name: Flat skill name (nested skills use "__", e.g. "frontend__react")
    """
    from skillshare.tools.skills import get_skill as _get

    try:
        return _dump(await asyncio.to_thread(_get, name))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def get_skill_file(name: str, filepath: str) -> str:
    """Read one file inside a skill.

    Args:
        name: Flat skill name
        filepath: Path relative to the skill directory
    """
    from skillshare.tools.skills import get_skill_file as _file

    try:
        return _dump(await asyncio.to_thread(_file, name, filepath))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def delete_skill(name: str) -> str:
    """Move a skill to the trash. A skill inside a tracked repo removes the whole repo.

    Args:
        name: Flat skill name
    """
    from skillshare.tools.skills import delete_skill as _delete

    try:
        return _dump(await asyncio.to_thread(_delete, name))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def uninstall_repo(name: str) -> str:
    """Move a tracked repository to the trash.

    Args:
        name: Repo directory name, with or without the leading "_"
    """
    from skillshare.tools.skills import uninstall_repo as _uninstall

    try:
        return _dump(await asyncio.to_thread(_uninstall, name))
    except SkillshareError as e:
        return _error(e)


# -- targets -----------------------------------------------------------------


@mcp.tool()
async def list_targets() -> str:
    """List targets with status, linked/local counts and drift."""
    from skillshare.tools.targets import list_targets as _list

    try:
        return _dump(await asyncio.to_thread(_list))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def available_targets() -> str:
    """Known tool skill directories on this machine and whether they are configured."""
    from skillshare.tools.targets import available_targets as _available

    try:
        return _dump(await asyncio.to_thread(_available))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def add_target(name: str, path: str, mode: str = "", include: str = "", exclude: str = "") -> str:
    """Register a sync target.

    Args:
        name: Unique target name (e.g. "claude")
        path: The tool's skills directory
        mode: "merge", "copy" or "symlink" (empty = global mode)
        include: Comma-separated patterns to include (empty = all)
        exclude: Comma-separated patterns to exclude (wins over include)
    """
    from skillshare.tools.targets import add_target as _add

    try:
        return _dump(await asyncio.to_thread(_add, name, path, mode=mode, include=_split(include), exclude=_split(exclude)))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def update_target(name: str, mode: str = "", include: str | None = None, exclude: str | None = None) -> str:
    """Change a target's mode or filters. Omitted values are left unchanged.

    Args:
        name: Target name
        mode: New mode (empty = unchanged)
        include: Comma-separated include patterns ("" clears them)
        exclude: Comma-separated exclude patterns ("" clears them)
    """
    from skillshare.tools.targets import update_target as _update

    try:
        return _dump(await asyncio.to_thread(
            _update,
            name,
            include=_split(include) if include is not None else None,
            exclude=_split(exclude) if exclude is not None else None,
            mode=mode or None,
        ))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def remove_target(name: str) -> str:
    """Unregister a target. Linked skills in it are replaced by real copies."""
    from skillshare.tools.targets import remove_target as _remove

    try:
        return _dump(await asyncio.to_thread(_remove, name))
    except SkillshareError as e:
        return _error(e)


# -- sync --------------------------------------------------------------------


@mcp.tool()
async def sync(dry_run: bool = False, force: bool = False, target: str = "") -> str:
    """Reconcile targets with the source directory.

    Args:
        dry_run: Report what would change without touching any file
        force: Replace local copies and prune locally modified entries
        target: Only this target (empty = all)
    """
    from skillshare.tools.sync import sync as _sync

    try:
        return _dump(await asyncio.to_thread(_sync, dry_run=dry_run, force=force, target=target or None))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def diff(target: str = "") -> str:
    """Per-target list of what a sync would link, update, prune or skip.

    Args:
        target: Only this target (empty = all)
    """
    from skillshare.tools.sync import diff as _diff

    try:
        return _dump(await asyncio.to_thread(_diff, target or None))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def collect_scan(target: str = "") -> str:
    """Find skills created directly inside targets that the source does not have.

    Args:
        target: Only this target (empty = all)
    """
    from skillshare.tools.sync import collect_scan as _scan

    try:
        return _dump(await asyncio.to_thread(_scan, target or None))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def collect(skills: list[dict], force: bool = False) -> str:
    """Copy local target skills into the source.

    Args:
        skills: List of {"name": ..., "targetName": ...} from collect_scan
        force: Overwrite source skills with the same name
    """
    from skillshare.tools.sync import collect as _collect

    try:
        return _dump(await asyncio.to_thread(_collect, skills, force=force))
    except SkillshareError as e:
        return _error(e)


# -- backup & trash ----------------------------------------------------------


@mcp.tool()
async def backup(target: str = "") -> str:
    """Snapshot target directories into a timestamped backup.

    Args:
        target: Only this target (empty = all)
    """
    from skillshare.tools.maintenance import create_backup

    try:
        return _dump(await asyncio.to_thread(create_backup, target or None))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def list_backups() -> str:
    """Backups, newest first, with their targets and sizes."""
    from skillshare.tools.maintenance import list_backups as _list

    return _dump(await asyncio.to_thread(_list))


@mcp.tool()
async def cleanup_backups() -> str:
    """Delete backups beyond the age, count and total size limits."""
    from skillshare.tools.maintenance import cleanup_backups as _cleanup

    try:
        return _dump(await asyncio.to_thread(_cleanup))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def restore(timestamp: str, target: str, force: bool = False) -> str:
    """Restore a target from a backup.

    Args:
        timestamp: Backup timestamp (YYYY-MM-DD_HH-MM-SS)
        target: Target name
        force: Overwrite local files that differ from the backup
    """
    from skillshare.tools.maintenance import restore as _restore

    try:
        return _dump(await asyncio.to_thread(_restore, timestamp, target, force=force))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def list_trash() -> str:
    """Trashed skills, newest first. Entries older than the TTL are purged first."""
    from skillshare.tools.maintenance import list_trash as _list

    try:
        return _dump(await asyncio.to_thread(_list))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def restore_trash(name: str, force: bool = False) -> str:
    """Restore the newest trashed copy of a skill.

    Args:
        name: Flat name the skill had when deleted
        force: Replace an active skill of the same name (it is trashed)
    """
    from skillshare.tools.maintenance import restore_trash as _restore

    try:
        return _dump(await asyncio.to_thread(_restore, name, force=force))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def delete_trash(name: str = "", empty: bool = False) -> str:
    """Permanently delete trashed skills.

    Args:
        name: Delete every trashed copy of this skill
        empty: Empty the whole trash instead
    """
    from skillshare.tools.maintenance import delete_trash as _delete
    from skillshare.tools.maintenance import empty_trash

    try:
        if empty:
            return _dump(await asyncio.to_thread(empty_trash))
        return _dump(await asyncio.to_thread(_delete, name))
    except SkillshareError as e:
        return _error(e)


# -- install & audit ---------------------------------------------------------


@mcp.tool()
async def discover(source: str) -> str:
    """List the skills a source contains without installing anything.

    Args:
        source: Local path, GitHub "owner/repo[/path]", or git URL
    """
    from skillshare.tools.install import discover as _discover

    try:
        return _dump(await _discover(source))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def install(
    source: str,
    name: str = "",
    force: bool = False,
    skip_audit: bool = False,
    track: bool = False,
    into: str = "",
) -> str:
    """Fetch, audit and install a skill into the source directory.

    Pipeline: fetch -> stage -> security audit -> meta -> atomic swap.

    Args:
        source: Local path, GitHub "owner/repo[/path]", or git URL
        name: Install under this name (default: derived from the source)
        force: Reinstall an existing skill and override an audit block
        skip_audit: Do not run the security audit
        track: Clone the whole repo as a tracked repo ("_name")
        into: Subdirectory of the source to install into
    """
    from skillshare.tools.install import install as _install

    try:
        return _dump(await _install(
            source, name=name or None, force=force, skip_audit=skip_audit, track=track, into=into,
        ))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def install_batch(source: str, skills: list[dict], force: bool = False, skip_audit: bool = False) -> str:
    """Install several skills from one source. Each skill succeeds or fails on its own.

    Args:
        source: Source shared by all skills
        skills: List of {"name": ..., "path": ...} as returned by discover
        force: Reinstall existing skills and override audit blocks
        skip_audit: Do not run the security audit
    """
    from skillshare.tools.install import install_batch as _batch

    try:
        return _dump(await _batch(source, skills, force=force, skip_audit=skip_audit))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def update(name: str = "", update_all: bool = False, force: bool = False, skip_audit: bool = False) -> str:
    """Update skills from their recorded sources and pull tracked repos.

    Args:
        name: Skill or tracked repo to update
        update_all: Update everything that has a source
        force: Discard local changes in tracked repos
        skip_audit: Do not audit updated skills
    """
    from skillshare.tools.install import update as _update

    try:
        return _dump(await _update(name=name or None, update_all=update_all, force=force, skip_audit=skip_audit))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def audit(name: str = "") -> str:
    """Security-scan one skill or all skills.

    Results carry findings, riskScore (0-100), riskLabel and isBlocked under
    the configured threshold.

    Args:
        name: Flat skill name (empty = all skills)
    """
    from skillshare.tools.audit import audit_all, audit_skill

    try:
        return _dump(await asyncio.to_thread(audit_skill, name) if name else await asyncio.to_thread(audit_all))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def search_hub(query: str, hub_url: str, limit: int = 20) -> str:
    """Search a skill hub index.

    Args:
        query: What you are looking for
        hub_url: URL or local path of a hub index JSON
        limit: Maximum number of results
    """
    from skillshare.tools.install import search_hub as _search

    try:
        return _dump(await _search(query, hub_url, limit=limit))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def hub_index(refresh_cache: bool = False) -> str:
    """Build a hub index JSON from the skills in the source directory.

    Args:
        refresh_cache: Also drop cached remote hub indexes
    """
    from skillshare.tools.install import hub_index as _index
    from skillshare.tools.install import refresh_hub

    try:
        payload = await asyncio.to_thread(_index)
        if refresh_cache:
            payload["cacheEntriesRemoved"] = (await asyncio.to_thread(refresh_hub))["removed"]
        return _dump(payload)
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def audit_rules(raw: str = "") -> str:
    """Read audit-rules.yaml, or validate and replace it when raw is given.

    Args:
        raw: New YAML content (empty = read only)
    """
    from skillshare.tools.audit import get_rules, put_rules

    try:
        return _dump(await asyncio.to_thread(put_rules, raw) if raw else await asyncio.to_thread(get_rules))
    except SkillshareError as e:
        return _error(e)


# -- config & log ------------------------------------------------------------


@mcp.tool()
async def config(raw: str = "") -> str:
    """Read config.yaml, or validate and replace it when raw is given.

    Args:
        raw: New YAML content (empty = read only)
    """
    from skillshare.tools.system import get_config, put_config

    try:
        return _dump(await asyncio.to_thread(put_config, raw) if raw else await asyncio.to_thread(get_config))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def operations_log(log_type: str = "ops", limit: int = 50, cmd: str = "", status: str = "") -> str:
    """Recent operations, newest first.

    Args:
        log_type: "ops" or "audit"
        limit: Maximum number of entries
        cmd: Only this command (e.g. "sync")
        status: Only "ok" or "error"
    """
    from skillshare.tools.system import get_log

    try:
        return _dump(await asyncio.to_thread(get_log, log_type, limit=limit, cmd=cmd, status=status))
    except SkillshareError as e:
        return _error(e)


# -- git ---------------------------------------------------------------------


@mcp.tool()
async def git_status() -> str:
    """Git state of the source directory."""
    from skillshare.tools.system import git_status as _status

    try:
        return _dump(await asyncio.to_thread(_status))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def push(message: str = "", dry_run: bool = False) -> str:
    """Commit and push changes in the source directory.

    Args:
        message: Commit message (default "Update skills")
        dry_run: Only report what would be pushed
    """
    from skillshare.tools.system import push as _push

    try:
        return _dump(await asyncio.to_thread(_push, message=message, dry_run=dry_run))
    except SkillshareError as e:
        return _error(e)


@mcp.tool()
async def pull(dry_run: bool = False) -> str:
    """Pull the source repository, then sync all targets.

    Args:
        dry_run: Only report incoming commits
    """
    from skillshare.tools.system import pull as _pull

    try:
        return _dump(await asyncio.to_thread(_pull, dry_run=dry_run))
    except SkillshareError as e:
        return _error(e)


def main():
    """Entry point for the MCP server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
