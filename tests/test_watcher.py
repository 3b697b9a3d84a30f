"""Tests for the debounced file watch coordinator."""

import asyncio
from unittest.mock import MagicMock

import pytest
from watchdog.events import FileModifiedEvent, FileMovedEvent

from wau.config import BACKUP_MARKER
from wau.exceptions import WatchError
from wau.orchestrator.watcher import FileWatchCoordinator, _ChangeHandler, matches_pattern

DEBOUNCE = 0.05


class FakeObserver:
    """Stands in for a watchdog Observer."""

    def __init__(self):
        self.scheduled = []
        self.started = False
        self.stopped = False
        self.alive = True

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True
        self.alive = False

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return self.alive


@pytest.fixture
def project(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.js").write_text("x")
    (tmp_path / "package.json").write_text("{}")
    (tmp_path / "node_modules" / "dep").mkdir(parents=True)
    (tmp_path / "node_modules" / "dep" / "index.js").write_text("x")
    return tmp_path


def make_coordinator(root, on_trigger, **kwargs):
    observer = FakeObserver()
    coordinator = FileWatchCoordinator(
        root,
        on_trigger=on_trigger,
        debounce_seconds=kwargs.pop("debounce_seconds", DEBOUNCE),
        observer_factory=lambda: observer,
        **kwargs,
    )
    return coordinator, observer


class TestMatchesPattern:
    @pytest.mark.parametrize(
        "path,pattern,expected",
        [
            ("package.json", "**/*", True),
            ("src/app.js", "**/*", True),
            ("src/app.js", "**/*.js", True),
            ("app.js", "**/*.js", True),
            ("src/app.py", "**/*.js", False),
            ("src/deep/app.js", "src/**", True),
            ("README.md", "src/**", False),
        ],
    )
    def test_patterns(self, path, pattern, expected):
        assert matches_pattern(path, pattern) is expected


class TestLifecycle:
    """Starting and stopping the coordinator."""

    @pytest.mark.asyncio
    async def test_start_schedules_recursive_watch(self, project):
        coordinator, observer = make_coordinator(project, MagicMock())
        coordinator.start()
        assert observer.started
        handler, path, recursive = observer.scheduled[0]
        assert isinstance(handler, _ChangeHandler)
        assert path == str(project.resolve())
        assert recursive is True
        assert coordinator.is_running
        await coordinator.stop()
        assert observer.stopped
        assert not coordinator.is_running

    @pytest.mark.asyncio
    async def test_counts_watched_files(self, project):
        coordinator, _ = make_coordinator(project, MagicMock())
        coordinator.start()
        # node_modules is ignored
        assert coordinator.watched_files == 2
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_missing_root(self, tmp_path):
        coordinator, _ = make_coordinator(tmp_path / "gone", MagicMock())
        with pytest.raises(WatchError):
            coordinator.start()

    @pytest.mark.asyncio
    async def test_observer_failure(self, project):
        def broken_observer():
            raise OSError("inotify watch limit reached")

        coordinator = FileWatchCoordinator(
            project, on_trigger=MagicMock(), observer_factory=broken_observer
        )
        with pytest.raises(WatchError) as exc_info:
            coordinator.start()
        assert "inotify" in str(exc_info.value)
        assert not coordinator.is_running

    @pytest.mark.asyncio
    async def test_is_alive_tracks_observer(self, project):
        coordinator, observer = make_coordinator(project, MagicMock())
        coordinator.start()
        assert coordinator.is_alive
        observer.alive = False
        assert not coordinator.is_alive
        await coordinator.stop()


class TestDebounce:
    """Bursts of events collapse into one trigger."""

    @pytest.mark.asyncio
    async def test_burst_produces_one_trigger(self, project):
        on_trigger = MagicMock()
        coordinator, _ = make_coordinator(project, on_trigger)
        coordinator.start()

        for i in range(10):
            assert coordinator.notify_change(project / "src" / f"file{i}.js")
            await asyncio.sleep(DEBOUNCE / 5)

        on_trigger.assert_not_called()
        await asyncio.sleep(DEBOUNCE * 4)
        on_trigger.assert_called_once_with()
        assert coordinator.trigger_count == 1
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_separate_windows_fire_separately(self, project):
        on_trigger = MagicMock()
        coordinator, _ = make_coordinator(project, on_trigger)
        coordinator.start()

        coordinator.notify_change(project / "src" / "app.js")
        await asyncio.sleep(DEBOUNCE * 4)
        coordinator.notify_change(project / "package.json")
        await asyncio.sleep(DEBOUNCE * 4)

        assert on_trigger.call_count == 2
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_stop_discards_pending_trigger(self, project):
        on_trigger = MagicMock()
        coordinator, _ = make_coordinator(project, on_trigger)
        coordinator.start()

        coordinator.notify_change(project / "src" / "app.js")
        assert coordinator.has_pending_trigger
        await coordinator.stop()
        await asyncio.sleep(DEBOUNCE * 4)

        on_trigger.assert_not_called()
        assert not coordinator.has_pending_trigger

    @pytest.mark.asyncio
    async def test_trigger_callback_errors_are_contained(self, project):
        on_trigger = MagicMock(side_effect=RuntimeError("boom"))
        coordinator, _ = make_coordinator(project, on_trigger)
        coordinator.start()
        coordinator.notify_change(project / "src" / "app.js")
        await asyncio.sleep(DEBOUNCE * 4)
        assert coordinator.trigger_count == 1
        await coordinator.stop()


class TestFiltering:
    """Ignored events never start or reset the window."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "rel_path",
        [
            "node_modules/dep/index.js",
            ".wau/state.json",
            ".git/index",
            f"package.json{BACKUP_MARKER}20260101T000000000000",
        ],
    )
    async def test_ignored_paths(self, project, rel_path):
        on_trigger = MagicMock()
        coordinator, _ = make_coordinator(project, on_trigger)
        coordinator.start()
        assert coordinator.notify_change(project / rel_path) is False
        assert not coordinator.has_pending_trigger
        await asyncio.sleep(DEBOUNCE * 3)
        on_trigger.assert_not_called()
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_ignored_event_does_not_extend_window(self, project):
        on_trigger = MagicMock()
        coordinator, _ = make_coordinator(project, on_trigger, debounce_seconds=0.2)
        coordinator.start()

        coordinator.notify_change(project / "src" / "app.js")
        await asyncio.sleep(0.1)
        coordinator.notify_change(project / "node_modules" / "dep" / "index.js")
        # A reset window would only close at 0.3s
        await asyncio.sleep(0.15)

        on_trigger.assert_called_once()
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_outside_watch_patterns(self, project):
        coordinator, _ = make_coordinator(project, MagicMock(), watch_patterns=["src/**"])
        coordinator.start()
        assert coordinator.notify_change(project / "package.json") is False
        assert coordinator.notify_change(project / "src" / "app.js") is True
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_own_writes_are_ignored(self, project):
        coordinator, _ = make_coordinator(project, MagicMock())
        coordinator.start()
        coordinator.ignore_own_writes([project / "package.json"])
        assert coordinator.notify_change(project / "package.json") is False
        assert coordinator.notify_change(project / "src" / "app.js") is True
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_own_write_grace_expires(self, project):
        coordinator, _ = make_coordinator(project, MagicMock())
        coordinator.start()
        coordinator.ignore_own_writes([project / "package.json"], grace_seconds=0.01)
        await asyncio.sleep(0.05)
        assert coordinator.notify_change(project / "package.json") is True
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_custom_ignores_keep_builtin_ones(self, project):
        coordinator, _ = make_coordinator(project, MagicMock(), ignore_patterns=["dist", "*.log"])
        coordinator.start()
        assert coordinator.notify_change(project / ".wau" / "state.json") is False
        assert coordinator.notify_change(project / ".wau" / "backups.json") is False
        assert coordinator.notify_change(project / "node_modules" / "dep" / "index.js") is False
        assert coordinator.notify_change(project / "debug.log") is False
        assert coordinator.notify_change(project / "src" / "app.js") is True
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_own_write_parent_directories_are_ignored(self, project):
        coordinator, _ = make_coordinator(project, MagicMock())
        coordinator.start()
        coordinator.ignore_own_writes([project / ".husky" / "pre-commit"])
        assert coordinator.notify_change(project / ".husky") is False
        assert coordinator.notify_change(project / ".husky" / "pre-commit") is False
        await coordinator.stop()

    def test_expired_own_writes_are_pruned(self, project):
        coordinator, _ = make_coordinator(project, MagicMock())
        coordinator.ignore_own_writes([project / "package.json"], grace_seconds=-1)
        coordinator.ignore_own_writes([project / "src" / "app.js"])
        assert set(coordinator._own_writes) == {"src/app.js", "src"}

    @pytest.mark.asyncio
    async def test_not_running_drops_events(self, project):
        coordinator, _ = make_coordinator(project, MagicMock())
        assert coordinator.notify_change(project / "src" / "app.js") is False


class TestChangeHandler:
    """watchdog events reach the coordinator on the event loop."""

    @pytest.mark.asyncio
    async def test_events_from_observer_thread(self, project):
        on_trigger = MagicMock()
        coordinator, _ = make_coordinator(project, on_trigger)
        coordinator.start()
        handler = _ChangeHandler(coordinator, asyncio.get_running_loop())

        event = FileModifiedEvent(str(project / "src" / "app.js"))
        await asyncio.to_thread(handler.on_any_event, event)
        await asyncio.sleep(DEBOUNCE * 4)

        on_trigger.assert_called_once()
        await coordinator.stop()

    @pytest.mark.asyncio
    async def test_move_reports_destination(self, project):
        coordinator, _ = make_coordinator(project, MagicMock())
        coordinator.start()
        coordinator.notify_change = MagicMock(return_value=True)
        handler = _ChangeHandler(coordinator, asyncio.get_running_loop())

        event = FileMovedEvent(str(project / "a.js"), str(project / "src" / "b.js"))
        handler.on_any_event(event)
        await asyncio.sleep(0)

        called = [c.args[0] for c in coordinator.notify_change.call_args_list]
        assert called == [str(project / "a.js"), str(project / "src" / "b.js")]
        await coordinator.stop()
