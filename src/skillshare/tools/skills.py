"""Skill inventory tools: overview, listing, details and deletion."""

from pathlib import Path

from skillshare.config import settings
from skillshare.core import store
from skillshare.core.installer import repo_dir_name
from skillshare.core.installer import uninstall_repo as _uninstall_repo
from skillshare.core.locks import source_lock
from skillshare.core.trash import move_to_trash
from skillshare.tools.common import current_config, logged


def overview() -> dict:
    """Summary of the source directory, targets and tracked repos.

    Returns:
        Dict with source path, skill counts, target count, global mode and
        tracked repositories.
    """
    cfg, source = current_config()
    skills = store.discover_skills(source)
    return {
        "source": str(source),
        "skillCount": len(skills),
        "topLevelCount": sum(1 for s in skills if "/" not in s.rel_path),
        "targetCount": len(cfg.targets),
        "mode": cfg.mode,
        "trackedRepos": [r.to_json_dict() for r in store.list_tracked_repos(source)],
    }


def list_skills() -> dict:
    """All skills in the source directory."""
    _, source = current_config()
    return {"skills": [s.to_json_dict() for s in store.discover_skills(source)]}


def get_skill(name: str) -> dict:
    """One skill with its SKILL.md content and file list.

    Args:
        name: Flat name of the skill (e.g. "frontend__react")
    """
    _, source = current_config()
    skill = store.get_skill(source, name)
    skill_md = Path(skill.source_path) / store.SKILL_FILE
    return {
        "skill": skill.to_json_dict(),
        "skillMdContent": skill_md.read_text(encoding="utf-8", errors="replace") if skill_md.exists() else "",
        "files": store.list_skill_files(skill),
    }


def get_skill_file(name: str, filepath: str) -> dict:
    """Content of one file inside a skill.

    Args:
        name: Flat name of the skill
        filepath: Path relative to the skill directory
    """
    _, source = current_config()
    return store.read_skill_file(store.get_skill(source, name), filepath)


def delete_skill(name: str) -> dict:
    """Move a skill to the trash. A skill inside a tracked repo takes the whole repo with it.

    Args:
        name: Flat name of the skill

    Returns:
        Dict with the trashed name and whether a whole repo was moved.
    """
    _, source = current_config()
    with logged("delete", {"name": name}), source_lock(source):
        skill = store.get_skill(source, name)
        repo_root = store.repo_root_for(source, skill)
        if repo_root is not None:
            _uninstall_repo(source, repo_root.name, settings.trash_path)
            return {"success": True, "name": repo_root.name, "repo": True}
        move_to_trash(Path(skill.source_path), skill.flat_name, settings.trash_path)
        return {"success": True, "name": skill.flat_name, "repo": False}


def uninstall_repo(name: str) -> dict:
    """Move a tracked repository to the trash.

    Args:
        name: Repo directory name, with or without the leading "_"
    """
    _, source = current_config()
    with logged("uninstall-repo", {"name": name}), source_lock(source):
        _uninstall_repo(source, name, settings.trash_path)
        return {"success": True, "name": repo_dir_name(name)}

