"""Tests for the debounced command directory watcher."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from kohi.watcher import CommandFileHandler, CommandWatcher


def _event(path, event_type="modified", is_directory=False):
    return SimpleNamespace(src_path=path, event_type=event_type, is_directory=is_directory)


@pytest.mark.asyncio
async def test_burst_of_changes_triggers_one_reload():
    on_change = AsyncMock()
    handler = CommandFileHandler(asyncio.get_running_loop(), on_change, debounce_seconds=0.05)

    for name in ("a.py", "b.py", "a.py"):
        handler.on_any_event(_event(f"/cmds/{name}"))
    await asyncio.sleep(0.2)

    on_change.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize("event", [
    _event("/cmds/notes.txt"),
    _event("/cmds/_private.py"),
    _event("/cmds/.hidden.py"),
    _event("/cmds/sub", is_directory=True),
    _event("/cmds/a.py", event_type="opened"),
])
async def test_irrelevant_events_are_ignored(event):
    on_change = AsyncMock()
    handler = CommandFileHandler(asyncio.get_running_loop(), on_change, debounce_seconds=0.01)
    handler.on_any_event(event)
    await asyncio.sleep(0.05)
    on_change.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_drops_pending_reload():
    on_change = AsyncMock()
    handler = CommandFileHandler(asyncio.get_running_loop(), on_change, debounce_seconds=0.05)
    handler.on_any_event(_event("/cmds/a.py"))
    await asyncio.sleep(0)
    handler.cancel()
    await asyncio.sleep(0.1)
    on_change.assert_not_awaited()


@pytest.mark.asyncio
async def test_watcher_reloads_on_file_write(tmp_path):
    changed = asyncio.Event()

    async def on_change():
        changed.set()

    watcher = CommandWatcher(tmp_path, on_change, debounce_seconds=0.05)
    watcher.start()
    try:
        await asyncio.sleep(0.1)
        (tmp_path / "new_cmd.py").write_text("# new\n")
        await asyncio.wait_for(changed.wait(), timeout=5)
    finally:
        watcher.stop()


def test_watcher_missing_directory_does_not_start(tmp_path):
    watcher = CommandWatcher(tmp_path / "missing", AsyncMock())
    watcher.start()
    watcher.stop()
