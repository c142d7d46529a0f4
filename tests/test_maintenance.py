"""Backup, restore, retention and trash lifecycle tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from skillshare.core.backup import (
    RetentionPolicy,
    cleanup_backups,
    create_backup,
    list_backups,
    restore_backup,
)
from skillshare.core.errors import ConflictError, NotFoundError
from skillshare.core.files import format_stamp
from skillshare.core.store import discover_skills
from skillshare.core.trash import (
    cleanup_trash,
    delete_from_trash,
    empty_trash,
    list_trash,
    move_to_trash,
    restore_from_trash,
)

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def _make_skill(root: Path, rel: str, body: str = "") -> Path:
    skill_dir = root / rel
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(f"---\nname: {skill_dir.name}\n---\n{body}\n")
    return skill_dir


def test_backup_skips_links_and_empty_targets():
    """Only local content is archived; empty and missing targets are omitted."""
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        source = root / "source"
        linked = _make_skill(source, "alpha")
        target = root / "claude"
        _make_skill(target, "handmade")
        (target / "alpha").symlink_to(linked)
        empty = root / "empty"
        empty.mkdir()

        backups = root / "backups"
        stamp, names = create_backup(
            backups, {"claude": target, "empty": empty, "missing": root / "nope"}, now=NOW,
        )
        assert stamp == "2026-01-15_12-00-00"
        assert names == ["claude"]
        assert (backups / stamp / "claude" / "handmade" / "SKILL.md").exists()
        assert not (backups / stamp / "claude" / "alpha").exists()

        stamp2, _ = create_backup(backups, {"claude": target}, now=NOW)
        assert stamp2 == "2026-01-15_12-00-00-1"
        assert [b.timestamp for b in list_backups(backups)] == [stamp2, stamp]
        print(f"  PASS: backup {stamp} holds {names}")


def test_backup_retention():
    """15 backups under a max-count policy of 10: 5 removed, then none."""
    with tempfile.TemporaryDirectory() as tmp:
        backups = Path(tmp)
        for i in range(15):
            stamp = format_stamp(NOW - timedelta(hours=i))
            _make_skill(backups / stamp / "claude", "skill")

        policy = RetentionPolicy(max_age_days=30, max_count=10, max_size_mb=500)
        assert cleanup_backups(backups, policy, now=NOW) == 5
        assert cleanup_backups(backups, policy, now=NOW) == 0

        remaining = list_backups(backups)
        assert len(remaining) == 10
        assert remaining[0].timestamp == format_stamp(NOW)
        print(f"  PASS: kept {len(remaining)} newest backups")


def test_backup_retention_by_age():
    """Backups older than the age limit are removed even under the count limit."""
    with tempfile.TemporaryDirectory() as tmp:
        backups = Path(tmp)
        for days in (1, 10, 40, 50):
            _make_skill(backups / format_stamp(NOW - timedelta(days=days)) / "claude", "skill")

        removed = cleanup_backups(backups, RetentionPolicy(max_age_days=30), now=NOW)
        assert removed == 2
        assert len(list_backups(backups)) == 2
        print("  PASS: expired backups removed")


def test_restore_conflict_and_force():
    """Restoring over changed local files needs force."""
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        target = root / "claude"
        skill = _make_skill(target, "handmade", "original")
        backups = root / "backups"
        stamp, _ = create_backup(backups, {"claude": target}, now=NOW)

        (skill / "SKILL.md").write_text("edited locally\n")
        with pytest.raises(ConflictError):
            restore_backup(backups, stamp, "claude", target)

        restore_backup(backups, stamp, "claude", target, force=True)
        assert "original" in (skill / "SKILL.md").read_text()

        # identical content restores without force
        restore_backup(backups, stamp, "claude", target)

        fresh = root / "fresh"
        restore_backup(backups, stamp, "claude", fresh)
        assert (fresh / "handmade" / "SKILL.md").exists()

        with pytest.raises(NotFoundError):
            restore_backup(backups, "2020-01-01_00-00-00", "claude", target)
        print("  PASS: restore conflict detected, force overwrote")


def test_trash_round_trip():
    """Delete then restore keeps the skill's flat name."""
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        source = root / "source"
        trash = root / "trash"
        skill = _make_skill(source, "group/gamma", "content")
        before = [s.flat_name for s in discover_skills(source)]

        move_to_trash(skill, "group__gamma", trash, now=NOW)
        assert not skill.exists()
        items = list_trash(trash)
        assert [i.name for i in items] == ["group__gamma"]
        assert items[0].timestamp == "2026-01-15_12-00-00"

        restore_from_trash(trash, "group__gamma", source)
        assert [s.flat_name for s in discover_skills(source)] == before
        assert "content" in (skill / "SKILL.md").read_text()
        assert list_trash(trash) == []
        print(f"  PASS: round trip preserved {before}")


def test_trash_expiry():
    """Entries older than the retention window are purged."""
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        trash = root / "trash"
        move_to_trash(_make_skill(root / "source", "alpha"), "alpha", trash, now=NOW)

        assert cleanup_trash(trash, timedelta(days=7), now=NOW + timedelta(days=6)) == 0
        assert cleanup_trash(trash, timedelta(days=7), now=NOW + timedelta(days=8)) == 1
        assert list_trash(trash) == []
        print("  PASS: expired after 7 days")


def test_trash_restore_collision():
    """Restoring onto an active skill conflicts; force trashes the active one."""
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        source = root / "source"
        trash = root / "trash"
        move_to_trash(_make_skill(source, "alpha", "old"), "alpha", trash, now=NOW)
        _make_skill(source, "alpha", "new")

        with pytest.raises(ConflictError):
            restore_from_trash(trash, "alpha", source)

        restore_from_trash(trash, "alpha", source, force=True, now=NOW)
        assert "old" in (source / "alpha" / "SKILL.md").read_text()
        trashed = list_trash(trash)
        assert [t.name for t in trashed] == ["alpha"]
        assert "new" in (Path(trashed[0].path) / "SKILL.md").read_text()
        print("  PASS: collision handled, displaced copy kept in trash")


def test_trash_delete_and_empty():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        trash = root / "trash"
        move_to_trash(_make_skill(root / "s", "alpha"), "alpha", trash, now=NOW)
        move_to_trash(_make_skill(root / "s", "alpha"), "alpha", trash, now=NOW)
        move_to_trash(_make_skill(root / "s", "beta"), "beta", trash, now=NOW)

        assert delete_from_trash(trash, "alpha") == 2
        with pytest.raises(NotFoundError):
            delete_from_trash(trash, "alpha")
        assert empty_trash(trash) == 1
        print("  PASS: delete and empty")


if __name__ == "__main__":
    print("=" * 60)
    print("skillshare maintenance tests")
    print("=" * 60)

    tests = [
        ("Backup: links and empty targets", test_backup_skips_links_and_empty_targets),
        ("Backup: retention by count", test_backup_retention),
        ("Backup: retention by age", test_backup_retention_by_age),
        ("Restore: conflict and force", test_restore_conflict_and_force),
        ("Trash: round trip", test_trash_round_trip),
        ("Trash: expiry", test_trash_expiry),
        ("Trash: restore collision", test_trash_restore_collision),
        ("Trash: delete and empty", test_trash_delete_and_empty),
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
