"""Core tests for skillshare: store, filters, sync engine, targets, collect."""

import json
import shutil
import tempfile
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from skillshare.config import SkillshareConfig, TargetConfig, parse_config
from skillshare.core.collect import collect, collect_scan
from skillshare.core.errors import InvalidInputError, NotFoundError
from skillshare.core.filters import filter_skills, should_sync
from skillshare.core.manifest import MANIFEST_FILE
from skillshare.core.store import discover_skills, get_skill, read_meta
from skillshare.core.sync import diff, sync
from skillshare.core.targets import list_targets, remove_target, target_info


def _make_skill(source: Path, rel: str, frontmatter: str = "") -> Path:
    skill_dir = source / rel
    skill_dir.mkdir(parents=True, exist_ok=True)
    fm = frontmatter or f"name: {skill_dir.name}\ndescription: The {skill_dir.name} skill\n"
    (skill_dir / "SKILL.md").write_text(f"---\n{fm}---\n\n# {skill_dir.name}\n")
    return skill_dir


def _setup(tmp: str, mode: str = "merge", **target_kw) -> tuple[SkillshareConfig, Path, Path]:
    root = Path(tmp).resolve()
    source = root / "skills"
    target = root / "claude-skills"
    for rel in ("alpha", "beta", "group/gamma"):
        _make_skill(source, rel)
    cfg = SkillshareConfig(
        source=str(source),
        mode=mode,
        targets={"claude": TargetConfig(path=str(target), **target_kw)},
    )
    return cfg, source, target


def test_discover_flat_names():
    """Nested skills get '__' flat names; tracked repos are flagged."""
    with tempfile.TemporaryDirectory() as tmp:
        source = Path(tmp)
        _make_skill(source, "alpha")
        _make_skill(source, "frontend/react")
        _make_skill(source, "_team-repo/lint")
        (source / "notes").mkdir()

        skills = discover_skills(source)
        names = [s.flat_name for s in skills]
        assert names == ["_team-repo__lint", "alpha", "frontend__react"]
        assert skills[0].is_in_repo is True
        assert get_skill(source, "react").flat_name == "frontend__react"
        with pytest.raises(NotFoundError):
            get_skill(source, "missing")
        print(f"  PASS: discovered {names}")


def test_filter_precedence():
    """Exclude wins over include; literal patterns match by prefix."""
    include, exclude = ["a*"], ["ab"]
    assert should_sync("abc", include, exclude) is False
    assert should_sync("axc", include, exclude) is True
    assert should_sync("zeta", include, exclude) is False
    assert should_sync("zeta", [], []) is True
    assert should_sync("frontend__react", ["frontend"], []) is True
    print("  PASS: include a*, exclude ab -> abc excluded, axc included")


def test_frontmatter_targets_restrict():
    """A skill listing 'targets:' is only sent to those targets."""
    with tempfile.TemporaryDirectory() as tmp:
        source = Path(tmp)
        _make_skill(source, "only-codex", "name: only-codex\ntargets: [codex]\n")
        _make_skill(source, "everywhere")
        skills = discover_skills(source)
        assert [s.flat_name for s in filter_skills(skills, "claude", [], [])] == ["everywhere"]
        assert len(filter_skills(skills, "codex", [], [])) == 2
        print("  PASS: frontmatter targets respected")


def test_merge_sync_idempotent():
    """A second merge sync changes nothing and diff is empty."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, source, target = _setup(tmp)

        first = sync(cfg)[0]
        assert sorted(first.linked) == ["alpha", "beta", "group__gamma"]
        assert first.status == "merged"
        assert (target / "alpha").is_symlink()
        assert (target / "group__gamma").resolve() == (source / "group" / "gamma").resolve()

        second = sync(cfg)[0]
        assert second.updated == [] and second.pruned == []
        assert diff(cfg)[0].items == []
        print(f"  PASS: merge idempotent, linked={first.linked}")


def test_dry_run_is_pure_and_matches_diff():
    """Dry-run leaves the filesystem untouched and agrees with diff."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, _, target = _setup(tmp)

        preview = sync(cfg, dry_run=True)[0]
        assert preview.dry_run is True
        assert not target.exists()

        items = diff(cfg)[0].items
        assert sorted(i.skill for i in items if i.action == "link") == sorted(preview.linked)
        assert not target.exists()

        real = sync(cfg)[0]
        assert sorted(real.linked) == sorted(preview.linked)
        print(f"  PASS: dry-run pure, {len(items)} planned links")


def test_merge_prune_and_local_skills():
    """Orphan links are pruned, local skills are left alone."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, source, target = _setup(tmp)
        sync(cfg)

        _make_skill(target, "my-local")
        shutil.rmtree(source / "beta")

        result = sync(cfg)[0]
        assert "beta" in result.pruned
        assert not (target / "beta").is_symlink()
        assert (target / "my-local" / "SKILL.md").exists()

        actions = {i.skill: i.action for i in diff(cfg)[0].items}
        assert actions == {"my-local": "local"}
        print(f"  PASS: pruned={result.pruned}, local kept")


def test_merge_local_copy_needs_force():
    """A real directory where a link belongs is skipped unless forced."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, source, target = _setup(tmp)
        _make_skill(target, "alpha")

        result = sync(cfg)[0]
        assert "alpha" in result.skipped
        assert any("alpha" in w for w in result.warnings)
        assert not (target / "alpha").is_symlink()

        forced = sync(cfg, force=True)[0]
        assert "alpha" in forced.updated
        assert (target / "alpha").is_symlink()
        print("  PASS: local copy replaced only with force")


def test_filter_change_prunes_excluded():
    """Tightening a target's filters prunes links that are now excluded."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, _, target = _setup(tmp)
        sync(cfg)

        cfg.targets["claude"].exclude = ["group"]
        items = diff(cfg)[0].items
        assert [(i.skill, i.action, i.reason) for i in items] == [("group__gamma", "prune", "excluded by filter")]

        result = sync(cfg)[0]
        assert result.pruned == ["group__gamma"]
        assert not (target / "group__gamma").exists()
        print("  PASS: excluded skill pruned")


def test_copy_sync_manifest():
    """Copy mode writes real copies tracked by checksum."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, source, target = _setup(tmp, mode="copy")

        first = sync(cfg)[0]
        assert sorted(first.linked) == ["alpha", "beta", "group__gamma"]
        assert not (target / "alpha").is_symlink()
        manifest = json.loads((target / MANIFEST_FILE).read_text())
        assert set(manifest["managed"]) == {"alpha", "beta", "group__gamma"}
        assert first.status == "copied"

        second = sync(cfg)[0]
        assert second.linked == [] and second.updated == [] and second.pruned == []
        assert diff(cfg)[0].items == []

        (source / "alpha" / "SKILL.md").write_text("---\nname: alpha\n---\nchanged\n")
        third = sync(cfg)[0]
        assert third.updated == ["alpha"]
        assert "changed" in (target / "alpha" / "SKILL.md").read_text()
        print("  PASS: copy mode idempotent and tracks changes")


def test_copy_local_edit_is_kept():
    """A locally modified copy is not overwritten without force."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, source, target = _setup(tmp, mode="copy")
        sync(cfg)

        (target / "beta" / "notes.md").write_text("my notes\n")
        (source / "beta" / "SKILL.md").write_text("---\nname: beta\n---\nv2\n")

        result = sync(cfg)[0]
        assert "beta" in result.skipped
        assert (target / "beta" / "notes.md").exists()

        forced = sync(cfg, force=True)[0]
        assert "beta" in forced.updated
        assert not (target / "beta" / "notes.md").exists()
        print("  PASS: local edit protected")


def test_copy_drift_reported_without_source_change():
    """Editing a managed copy is reported even when the source is unchanged."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, _, target = _setup(tmp, mode="copy")
        sync(cfg)

        (target / "alpha" / "SKILL.md").write_text("---\nname: alpha\n---\nedited in place\n")

        items = {i.skill: i for i in diff(cfg)[0].items}
        assert items["alpha"].action == "skip"
        assert "locally modified" in items["alpha"].reason

        result = sync(cfg)[0]
        assert "alpha" in result.skipped
        assert any(w.startswith("alpha: locally modified") for w in result.warnings)
        assert "edited in place" in (target / "alpha" / "SKILL.md").read_text()
        print("  PASS: local drift warned, copy kept")


def test_symlink_mode():
    """Symlink mode links the whole target directory to the source."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, source, target = _setup(tmp, mode="symlink")
        result = sync(cfg)[0]
        assert target.is_symlink()
        assert target.resolve() == source.resolve()
        assert result.status == "linked"
        assert sync(cfg)[0].updated == []
        print("  PASS: target linked to source")


def test_unreachable_target_is_isolated():
    """A broken target reports an error without stopping other targets."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, _, target = _setup(tmp)
        blocker = Path(tmp).resolve() / "blocker"
        blocker.write_text("not a directory")
        cfg.targets["broken"] = TargetConfig(path=str(blocker / "skills"))

        results = {r.target: r for r in sync(cfg)}
        assert results["broken"].status == "broken"
        assert results["broken"].error
        assert len(results["claude"].linked) == 3
        print(f"  PASS: broken target isolated: {results['broken'].error}")


def test_target_status_and_drift():
    """Drift is reported when fewer skills are linked than expected."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, source, target = _setup(tmp)
        skills = discover_skills(source)

        assert target_info(cfg, "claude", skills).status == "not exist"
        sync(cfg)
        info = target_info(cfg, "claude", skills)
        assert (info.linked_count, info.expected_skill_count, info.drift) == (3, 3, False)

        (target / "beta").unlink()
        info = list_targets(cfg, skills)[0]
        assert info.drift is True
        print(f"  PASS: drift detected ({info.linked_count}/{info.expected_skill_count})")


def test_remove_target_materializes_links():
    """Removing a merge target leaves real copies behind."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, _, target = _setup(tmp)
        sync(cfg)
        remove_target(cfg, "claude")
        assert "claude" not in cfg.targets
        assert (target / "alpha").is_dir() and not (target / "alpha").is_symlink()
        assert (target / "alpha" / "SKILL.md").exists()
        print("  PASS: links replaced with copies")


def test_collect_local_skills():
    """Local skills in a target are pulled into the source once."""
    with tempfile.TemporaryDirectory() as tmp:
        cfg, source, target = _setup(tmp)
        sync(cfg)
        _make_skill(target, "handmade")

        scan = collect_scan(cfg)
        assert scan.total_count == 1
        assert scan.targets[0].skills[0].name == "handmade"

        result = collect(cfg, [{"name": "handmade", "targetName": "claude"}])
        assert result.pulled == ["handmade"]
        assert (source / "handmade" / "SKILL.md").exists()
        assert read_meta(source / "handmade").type == "collected"

        again = collect(cfg, [{"name": "handmade", "targetName": "claude"}])
        assert again.skipped == ["handmade"]

        missing = collect(cfg, [{"name": "nope", "targetName": "claude"}])
        assert "nope" in missing.failed

        with pytest.raises(InvalidInputError):
            collect(cfg, [{"name": "handmade"}])
        print("  PASS: collect pulled, skipped and failed correctly")


def test_parse_config_rejects_bad_mode():
    cfg = parse_config("source: ~/skills\ntargets:\n  claude:\n    path: ~/.claude/skills\n    mode: copy\n")
    assert cfg.target_mode("claude") == "copy"
    with pytest.raises(InvalidInputError):
        parse_config("mode: mirror\n")
    with pytest.raises(InvalidInputError):
        parse_config("- not\n- a mapping\n")
    print("  PASS: config validation")


if __name__ == "__main__":
    print("=" * 60)
    print("skillshare core tests")
    print("=" * 60)

    tests = [
        ("Store: flat names", test_discover_flat_names),
        ("Filters: precedence", test_filter_precedence),
        ("Filters: frontmatter targets", test_frontmatter_targets_restrict),
        ("Sync: merge idempotence", test_merge_sync_idempotent),
        ("Sync: dry-run purity", test_dry_run_is_pure_and_matches_diff),
        ("Sync: prune and local", test_merge_prune_and_local_skills),
        ("Sync: local copy force", test_merge_local_copy_needs_force),
        ("Sync: filter change", test_filter_change_prunes_excluded),
        ("Sync: copy manifest", test_copy_sync_manifest),
        ("Sync: copy local edit", test_copy_local_edit_is_kept),
        ("Sync: copy drift", test_copy_drift_reported_without_source_change),
        ("Sync: symlink mode", test_symlink_mode),
        ("Sync: broken target", test_unreachable_target_is_isolated),
        ("Targets: drift", test_target_status_and_drift),
        ("Targets: remove", test_remove_target_materializes_links),
        ("Collect: local skills", test_collect_local_skills),
        ("Config: validation", test_parse_config_rejects_bad_mode),
    ]

    passed = 0
    failed = 0

    for name, test_fn in tests:
        try:
            print(f"\n[TEST] {name}")
            test_fn()
            passed += 1
        except Exception as e:
            print(f"  FAIL: {e}")
            failed += 1

    print(f"\n{'=' * 60}")
    print(f"Results: {passed} passed, {failed} failed, {passed + failed} total")
    print(f"{'=' * 60}")

    exit(1 if failed > 0 else 0)
