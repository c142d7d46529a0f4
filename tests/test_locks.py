"""Tests for the per-source-root lock shared by tools, MCP server and installs."""

import asyncio
import json
import tempfile
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from skillshare import server
from skillshare.config import settings
from skillshare.core.locks import _get_lock, async_source_lock


def _make_skill(root: Path, rel: str) -> Path:
    skill_dir = root / rel
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(f"---\nname: {skill_dir.name}\ndescription: {skill_dir.name} skill\n---\n\nBody.\n")
    return skill_dir


def test_mcp_sync_waits_for_running_install():
    """A sync arriving during an install waits for it without stalling the event loop."""
    original = settings.home
    with tempfile.TemporaryDirectory() as tmp:
        try:
            home = Path(tmp).resolve()
            source = home / "skills"
            target = home / "claude"
            _make_skill(source, "alpha")
            (home / "config.yaml").write_text(
                f"source: {source}\nmode: merge\ntargets:\n  claude:\n    path: {target}\n"
            )
            settings.home = home
            events: list[str] = []

            async def installing():
                async with async_source_lock(source):
                    events.append("install started")
                    await asyncio.sleep(0.2)
                    events.append("install finished")

            async def scenario():
                holder = asyncio.create_task(installing())
                await asyncio.sleep(0.05)
                payload = await asyncio.wait_for(server.sync(), timeout=5)
                events.append("sync finished")
                await holder
                return json.loads(payload)

            payload = asyncio.run(scenario())
            assert events == ["install started", "install finished", "sync finished"]
            assert payload["results"][0]["linked"] == ["alpha"]
            assert (target / "alpha").is_symlink()
            assert not _get_lock(source).locked()
            print("  PASS: sync ran after the install released the lock")
        finally:
            settings.home = original


def test_cancelled_waiter_does_not_keep_lock():
    """Cancelling a coroutine that is waiting for the lock leaves it free for the next caller."""
    with tempfile.TemporaryDirectory() as tmp:
        source = Path(tmp).resolve()

        async def scenario():
            held = asyncio.Event()
            release = asyncio.Event()

            async def holder():
                async with async_source_lock(source):
                    held.set()
                    await release.wait()

            async def waiter():
                async with async_source_lock(source):
                    pass

            holding = asyncio.create_task(holder())
            await held.wait()
            waiting = asyncio.create_task(waiter())
            await asyncio.sleep(0.05)
            waiting.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiting

            release.set()
            await holding

            async def next_caller():
                async with async_source_lock(source):
                    return True

            return await asyncio.wait_for(next_caller(), timeout=5)

        assert asyncio.run(scenario()) is True
        assert not _get_lock(source).locked()
        print("  PASS: lock handed back after a cancelled wait")


def test_lock_is_shared_per_resolved_root():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp).resolve()
        (root / "skills").mkdir()
        assert _get_lock(root / "skills") is _get_lock(root / "other" / ".." / "skills")
        assert _get_lock(root / "skills") is not _get_lock(root)
        print("  PASS: one lock per resolved source root")


if __name__ == "__main__":
    print("=" * 60)
    print("skillshare lock tests")
    print("=" * 60)

    tests = [
        ("Locks: MCP sync during install", test_mcp_sync_waits_for_running_install),
        ("Locks: cancelled waiter", test_cancelled_waiter_does_not_keep_lock),
        ("Locks: per root", test_lock_is_shared_per_resolved_root),
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
