"""Per-source-root mutual exclusion for mutating operations.

Reads (status, diff, list, audit) do not take the lock. Blocking callers use
``source_lock`` from a worker thread; coroutines use ``async_source_lock``,
which never blocks the event loop.
"""

import asyncio
import threading
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path

_locks: dict[str, threading.Lock] = {}
_guard = threading.Lock()


def _get_lock(source: Path) -> threading.Lock:
    key = str(source.expanduser().resolve())
    with _guard:
        if key not in _locks:
            _locks[key] = threading.Lock()
        return _locks[key]


def _release_when_acquired(lock: threading.Lock):
    def callback(acquiring: asyncio.Future) -> None:
        if not acquiring.cancelled() and acquiring.exception() is None and acquiring.result():
            lock.release()

    return callback


@contextmanager
def source_lock(source: Path):
    lock = _get_lock(source)
    with lock:
        yield


@asynccontextmanager
async def async_source_lock(source: Path):
    """Same lock, acquired in a worker thread so the event loop keeps running.

    A waiter cancelled before the acquire completes hands the lock back as
    soon as the worker thread gets it.
    """
    lock = _get_lock(source)
    acquiring = asyncio.ensure_future(asyncio.to_thread(lock.acquire))
    try:
        await asyncio.shield(acquiring)
    except asyncio.CancelledError:
        acquiring.add_done_callback(_release_when_acquired(lock))
        raise
    try:
        yield
    finally:
        lock.release()
