"""Sync/reconciliation engine.

Each target mode has a ``ReconcileStrategy``:
- merge: one symlink per skill inside the target, local skills untouched
- copy: real copies tracked by checksum in a manifest
- symlink: the whole target directory is a link to the source

A strategy first *plans* a list of actions from the on-disk state (pure),
then *applies* them one by one. Sync applies the plan, dry-run and diff only
render it, so the three can never disagree.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from skillshare.config import SkillshareConfig
from skillshare.core.errors import NotFoundError
from skillshare.core.files import (
    atomic_copy_dir,
    atomic_symlink,
    dir_checksum,
    is_empty_dir,
    is_hidden,
    link_is_under,
    link_points_to,
    remove_path,
)
from skillshare.core.filters import filter_skills
from skillshare.core.manifest import read_manifest, write_manifest
from skillshare.core.store import FLAT_SEP, discover_skills
from skillshare.core.targets import STATUS_BROKEN, check_status, get_target
from skillshare.models import CopyManifest, DiffItem, DiffTarget, Skill, SyncResult

logger = logging.getLogger("skillshare.sync")

LOCAL_COPY = "local copy (sync --force to replace)"


@dataclass
class Action:
    """One planned step for one target entry.

    ``kind`` is the diff action (empty when the entry is already in sync),
    ``bucket`` the SyncResult list it is reported in, ``op`` what apply does.
    """

    skill: str
    kind: str = ""
    reason: str = ""
    bucket: str = ""
    op: str = ""  # "link", "copy", "remove", "forget" or "" for nothing
    src: Path | None = None
    dest: Path | None = None
    checksum: str = ""
    warning: str = ""


class ReconcileStrategy:
    """Base class: plan against the filesystem, then apply."""

    mode = ""

    def __init__(self, name: str, path: Path, source: Path, force: bool = False):
        self.name = name
        self.path = path
        self.source = source
        self.force = force

    def plan(self, wanted: list[Skill], all_skills: list[Skill]) -> list[Action]:
        raise NotImplementedError

    def prepare(self) -> None:
        """Make the target path ready before applying (non-dry-run only)."""
        if self.path.is_symlink():
            self.path.unlink()
            logger.info("Converted %s from symlink to %s mode", self.path, self.mode)
        self.path.mkdir(parents=True, exist_ok=True)

    def apply(self, action: Action) -> None:
        if action.op == "link":
            atomic_symlink(action.dest, action.src)
        elif action.op == "copy":
            atomic_copy_dir(action.src, action.dest)
        elif action.op == "remove":
            remove_path(action.dest)

    def finish(self) -> None:
        pass

    def _existing_entries(self) -> list[Path]:
        """Visible entries of the target directory (none if it is not a real dir)."""
        if self.path.is_symlink() or not self.path.is_dir():
            return []
        return sorted(p for p in self.path.iterdir() if not is_hidden(p.name))


class MergeStrategy(ReconcileStrategy):
    mode = "merge"

    def plan(self, wanted: list[Skill], all_skills: list[Skill]) -> list[Action]:
        actions: list[Action] = []
        converting = self.path.is_symlink()
        wanted_names = {s.flat_name for s in wanted}
        known_names = {s.flat_name for s in all_skills}

        for skill in wanted:
            src = Path(skill.source_path)
            dest = self.path / skill.flat_name
            if converting or not (dest.is_symlink() or dest.exists()):
                actions.append(Action(skill.flat_name, "link", "missing", "linked", "link", src, dest))
            elif dest.is_symlink():
                if link_points_to(dest, src):
                    actions.append(Action(skill.flat_name, bucket="linked"))
                else:
                    actions.append(Action(skill.flat_name, "update", "symlink points elsewhere", "updated", "link", src, dest))
            elif self.force:
                actions.append(Action(skill.flat_name, "update", "local copy replaced", "updated", "link", src, dest))
            else:
                actions.append(Action(
                    skill.flat_name, "skip", LOCAL_COPY, "skipped",
                    warning=f"{skill.flat_name}: {LOCAL_COPY}",
                ))

        if converting:
            return actions

        for entry in self._existing_entries():
            if entry.name in wanted_names:
                continue
            actions.append(self._plan_orphan(entry, known_names))
        return actions

    def _plan_orphan(self, entry: Path, known_names: set[str]) -> Action:
        name = entry.name
        if entry.is_symlink():
            if link_is_under(entry, self.source):
                reason = "excluded by filter" if name in known_names and entry.exists() else "orphan symlink"
                return Action(name, "prune", reason, "pruned", "remove", dest=entry)
            if not entry.exists():
                return Action(name, "prune", "broken symlink", "pruned", "remove", dest=entry)
            if self.force:
                return Action(name, "prune", "external symlink", "pruned", "remove", dest=entry)
            return Action(
                name, "skip", "external symlink (sync --force to remove)", "skipped",
                warning=f"{name}: external symlink kept (sync --force to remove)",
            )

        if entry.is_dir() and (FLAT_SEP in name or name.startswith("_")):
            if self.force:
                return Action(name, "prune", "orphan directory", "pruned", "remove", dest=entry)
            return Action(
                name, "skip", "orphan directory with local files (sync --force to remove)", "skipped",
                warning=f"{name}: orphan directory kept (sync --force to remove)",
            )
        return Action(name, "local", "local only")


class CopyStrategy(ReconcileStrategy):
    mode = "copy"

    def __init__(self, name: str, path: Path, source: Path, force: bool = False):
        super().__init__(name, path, source, force)
        self.manifest = CopyManifest()
        self._dirty = False

    def plan(self, wanted: list[Skill], all_skills: list[Skill]) -> list[Action]:
        converting = self.path.is_symlink()
        if not converting and self.path.is_dir():
            self.manifest = read_manifest(self.path)
        managed = self.manifest.managed
        wanted_names = {s.flat_name for s in wanted}
        known_names = {s.flat_name for s in all_skills}
        actions: list[Action] = []

        for skill in wanted:
            src = Path(skill.source_path)
            dest = self.path / skill.flat_name
            name = skill.flat_name
            src_sum = dir_checksum(src)

            if converting or not (dest.is_symlink() or dest.exists()):
                actions.append(Action(name, "copy", "missing", "linked", "copy", src, dest, src_sum))
            elif dest.is_symlink():
                actions.append(Action(name, "update", "symlink replaced with copy", "updated", "copy", src, dest, src_sum))
            elif name in managed:
                if self.force:
                    actions.append(Action(name, "update", "forced recopy", "updated", "copy", src, dest, src_sum))
                elif dest.is_dir() and dir_checksum(dest) != managed[name]:
                    actions.append(Action(
                        name, "skip", "locally modified (sync --force to overwrite)", "skipped",
                        warning=f"{name}: locally modified (sync --force to overwrite)",
                    ))
                elif managed[name] == src_sum:
                    actions.append(Action(name, bucket="skipped", reason="already copied"))
                else:
                    actions.append(Action(name, "update", "content changed", "updated", "copy", src, dest, src_sum))
            elif self.force:
                actions.append(Action(name, "update", "local copy replaced", "updated", "copy", src, dest, src_sum))
            else:
                actions.append(Action(name, "skip", LOCAL_COPY, "skipped", warning=f"{name}: {LOCAL_COPY}"))

        if converting:
            return actions

        for name in sorted(managed):
            if name in wanted_names:
                continue
            dest = self.path / name
            if not (dest.exists() or dest.is_symlink()):
                actions.append(Action(name, op="forget"))
                continue
            reason = "excluded by filter" if name in known_names else "orphan copy"
            if not self.force and dest.is_dir() and not dest.is_symlink() and dir_checksum(dest) != managed[name]:
                actions.append(Action(
                    name, "skip", "locally modified orphan (sync --force to remove)", "skipped",
                    warning=f"{name}: locally modified, kept (sync --force to remove)",
                ))
                continue
            actions.append(Action(name, "prune", reason, "pruned", "remove", dest=dest))

        for entry in self._existing_entries():
            if entry.name in wanted_names or entry.name in managed:
                continue
            if entry.is_dir() and not entry.is_symlink():
                actions.append(Action(entry.name, "local", "local only"))
        return actions

    def apply(self, action: Action) -> None:
        super().apply(action)
        if action.op == "copy":
            self.manifest.managed[action.skill] = action.checksum
            self._dirty = True
        elif action.op in ("remove", "forget"):
            self.manifest.managed.pop(action.skill, None)
            self._dirty = True

    def finish(self) -> None:
        if self._dirty or not (self.path / ".skillshare-manifest.json").exists():
            write_manifest(self.path, self.manifest)


class SymlinkStrategy(ReconcileStrategy):
    """The target directory itself becomes a link to the source."""

    mode = "symlink"

    def plan(self, wanted: list[Skill], all_skills: list[Skill]) -> list[Action]:
        names = [s.flat_name for s in all_skills]
        if self.path.is_symlink():
            if link_points_to(self.path, self.source):
                return [Action(n, bucket="linked") for n in names]
            return [Action("*", "update", "symlink points elsewhere", "updated", "link", self.source, self.path)]
        if not self.path.exists() or is_empty_dir(self.path):
            return [Action("*", "link", "missing", "linked", "link", self.source, self.path)]
        if self.force:
            return [Action("*", "update", "directory replaced with link", "updated", "link", self.source, self.path)]
        return [Action(
            "*", "skip", "target has files (sync --force to replace)", "skipped",
            warning=f"{self.path}: target has files (sync --force to replace)",
        )]

    def prepare(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)


STRATEGIES: dict[str, type[ReconcileStrategy]] = {
    "merge": MergeStrategy,
    "copy": CopyStrategy,
    "symlink": SymlinkStrategy,
}


def strategy_for(cfg: SkillshareConfig, name: str, force: bool = False) -> ReconcileStrategy:
    target = get_target(cfg, name)
    mode = cfg.target_mode(name)
    return STRATEGIES[mode](name, Path(target.path).expanduser(), cfg.source_path, force)


def plan_target(cfg: SkillshareConfig, name: str, skills: list[Skill], force: bool = False) -> tuple[ReconcileStrategy, list[Action]]:
    """Compute what syncing one target would do, without touching it."""
    target = get_target(cfg, name)
    strategy = strategy_for(cfg, name, force)
    wanted = filter_skills(skills, name, target.include, target.exclude)
    return strategy, strategy.plan(wanted, skills)


def _load_source_skills(cfg: SkillshareConfig) -> list[Skill]:
    if not cfg.source_path.is_dir():
        raise NotFoundError(f"source directory does not exist: {cfg.source_path}")
    return discover_skills(cfg.source_path)


def _target_names(cfg: SkillshareConfig, target: str | None) -> list[str]:
    if target:
        get_target(cfg, target)
        return [target]
    return sorted(cfg.targets)


def sync_target(cfg: SkillshareConfig, name: str, skills: list[Skill], dry_run: bool = False, force: bool = False) -> SyncResult:
    """Reconcile one target. Per-entry failures become warnings."""
    mode = cfg.target_mode(name)
    result = SyncResult(target=name, mode=mode, dry_run=dry_run)

    try:
        strategy, actions = plan_target(cfg, name, skills, force)
        if not dry_run:
            strategy.prepare()
    except OSError as e:
        logger.error("Target '%s' unreachable: %s", name, e)
        result.status = STATUS_BROKEN
        result.error = str(e)
        return result

    for action in actions:
        if not dry_run and action.op:
            try:
                strategy.apply(action)
            except OSError as e:
                logger.warning("Sync '%s': %s failed: %s", name, action.skill, e)
                result.warnings.append(f"{action.skill}: {e}")
                continue
        if action.bucket:
            getattr(result, action.bucket).append(action.skill)
        if action.warning:
            result.warnings.append(action.warning)

    if not dry_run:
        try:
            strategy.finish()
        except OSError as e:
            result.warnings.append(f"manifest: {e}")

    result.status = check_status(strategy.path, mode, cfg.source_path)
    logger.info(
        "Sync '%s'%s: %d linked, %d updated, %d skipped, %d pruned",
        name, " (dry run)" if dry_run else "",
        len(result.linked), len(result.updated), len(result.skipped), len(result.pruned),
    )
    return result


def sync(cfg: SkillshareConfig, dry_run: bool = False, force: bool = False, target: str | None = None) -> list[SyncResult]:
    """Sync every configured target (or one). One result per target."""
    names = _target_names(cfg, target)
    skills = _load_source_skills(cfg)
    return [sync_target(cfg, name, skills, dry_run=dry_run, force=force) for name in names]


def diff(cfg: SkillshareConfig, target: str | None = None) -> list[DiffTarget]:
    """What a sync would change, per target. Entries already in sync are omitted."""
    names = _target_names(cfg, target)
    skills = _load_source_skills(cfg)

    result = []
    for name in names:
        try:
            _, actions = plan_target(cfg, name, skills)
        except OSError as e:
            result.append(DiffTarget(target=name, items=[DiffItem(skill="*", action="skip", reason=f"target unreachable: {e}")]))
            continue
        items = [DiffItem(skill=a.skill, action=a.kind, reason=a.reason) for a in actions if a.kind]
        result.append(DiffTarget(target=name, items=items))
    return result
