import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

from twitch_announcer.storage.state_store import PersistedState, StateStore
from twitch_announcer.twitch.models import FetchFailure, LiveSnapshot
from twitch_announcer.twitch.poller import StreamEvent, StreamPoller


def live(title="Foo", session_id="123", viewers=10, category="Just Chatting", started_at="2026-01-01T10:00:00Z"):
    return LiveSnapshot(is_live=True, session_id=session_id, title=title, category=category,
                        viewer_count=viewers, started_at=started_at)


class StreamPollerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = StateStore(Path(self._tmp.name) / "state.json")
        self.client = MagicMock()
        self.client.get_live_snapshot = AsyncMock(return_value=LiveSnapshot.offline())

    async def asyncTearDown(self) -> None:
        self._tmp.cleanup()

    def _poller(self, state: PersistedState = None) -> StreamPoller:
        if state is not None:
            self.store.save(state)
        return StreamPoller(self.client, self.store)

    async def test_offline_to_live_is_stream_started(self) -> None:
        poller = self._poller()
        self.client.get_live_snapshot.return_value = live()

        result = await poller.check_for_changes()

        self.assertTrue(result.changed)
        self.assertEqual(result.event, StreamEvent.STARTED)
        self.assertEqual(result.snapshot.title, "Foo")
        persisted = self.store.load()
        self.assertTrue(persisted.is_live)
        self.assertEqual(persisted.stream_title, "Foo")
        self.assertEqual(persisted.last_stream_id, "123")
        self.assertEqual(persisted.stream_started_at, "2026-01-01T10:00:00Z")

    async def test_unchanged_live_snapshot_is_not_an_event(self) -> None:
        poller = self._poller(PersistedState(is_live=True, stream_title="Foo", stream_started_at="T0"))
        self.client.get_live_snapshot.return_value = live(title="Foo", viewers=999)

        first = await poller.check_for_changes()
        second = await poller.check_for_changes()

        self.assertFalse(first.changed)
        self.assertFalse(second.changed)
        self.assertIsNone(second.event)
        self.assertEqual(poller.state.stream_title, "Foo")
        self.assertEqual(poller.state.stream_started_at, "T0")

    async def test_title_change_is_stream_updated(self) -> None:
        poller = self._poller(PersistedState(is_live=True, stream_title="Foo", stream_category="A"))
        self.client.get_live_snapshot.return_value = live(title="Bar", category="B")

        result = await poller.check_for_changes()

        self.assertTrue(result.changed)
        self.assertEqual(result.event, StreamEvent.UPDATED)
        persisted = self.store.load()
        self.assertEqual(persisted.stream_title, "Bar")
        self.assertEqual(persisted.stream_category, "B")

    async def test_category_only_change_is_not_an_event(self) -> None:
        poller = self._poller(PersistedState(is_live=True, stream_title="Foo", stream_category="A"))
        self.client.get_live_snapshot.return_value = live(title="Foo", category="B")

        result = await poller.check_for_changes()

        self.assertFalse(result.changed)

    async def test_live_to_offline_is_stream_ended_and_clears_session(self) -> None:
        poller = self._poller(PersistedState(last_stream_id="123", is_live=True, stream_title="Foo",
                                             stream_category="A", stream_started_at="T0"))
        self.client.get_live_snapshot.return_value = LiveSnapshot.offline()

        result = await poller.check_for_changes()

        self.assertEqual(result.event, StreamEvent.ENDED)
        persisted = self.store.load()
        self.assertFalse(persisted.is_live)
        self.assertIsNone(persisted.stream_title)
        self.assertIsNone(persisted.stream_category)
        self.assertIsNone(persisted.stream_started_at)
        self.assertEqual(persisted.last_stream_id, "123")

    async def test_fetch_failure_keeps_live_state(self) -> None:
        poller = self._poller(PersistedState(is_live=True, stream_title="Foo"))
        self.client.get_live_snapshot.return_value = FetchFailure("HTTP 500")

        result = await poller.check_for_changes()

        self.assertFalse(result.changed)
        self.assertTrue(result.error)
        self.assertTrue(poller.state.is_live)
        self.assertTrue(self.store.load().is_live)

    async def test_client_exception_is_converted_to_error_result(self) -> None:
        poller = self._poller(PersistedState(is_live=True, stream_title="Foo"))
        self.client.get_live_snapshot.side_effect = RuntimeError("boom")

        result = await poller.check_for_changes()

        self.assertTrue(result.error)
        self.assertTrue(poller.state.is_live)

    async def test_offline_to_offline_refreshes_last_checked(self) -> None:
        stamps = iter(["t1", "t2", "t3"])
        self.store = StateStore(Path(self._tmp.name) / "clocked.json", clock=lambda: next(stamps))
        poller = StreamPoller(self.client, self.store)
        self.assertEqual(poller.state.last_checked_at, "t1")

        result = await poller.check_for_changes()

        self.assertFalse(result.changed)
        self.assertFalse(result.error)
        self.assertEqual(poller.state.last_checked_at, "t2")
        self.assertEqual(self.store.load().last_checked_at, "t2")

    async def test_liveness_tracks_last_successful_snapshot(self) -> None:
        poller = self._poller()
        sequence = [live(), FetchFailure("x"), live(title="Bar"), LiveSnapshot.offline(),
                    FetchFailure("y"), FetchFailure("z"), live(session_id="456")]
        expected_live = True
        for snap in sequence:
            self.client.get_live_snapshot.return_value = snap
            result = await poller.check_for_changes()
            if isinstance(snap, LiveSnapshot):
                expected_live = snap.is_live
            self.assertEqual(poller.state.is_live, expected_live)
            self.assertLessEqual(int(result.changed) + int(result.error), 1)
            if not poller.state.is_live:
                self.assertIsNone(poller.state.stream_title)
                self.assertIsNone(poller.state.stream_category)
                self.assertIsNone(poller.state.stream_started_at)

    async def test_force_check_repairs_state_without_event(self) -> None:
        poller = self._poller()
        self.client.get_live_snapshot.return_value = live(title="Foo")

        snapshot = await poller.force_check()

        self.assertEqual(snapshot.title, "Foo")
        self.assertTrue(poller.state.is_live)
        self.assertEqual(self.store.load().stream_title, "Foo")
        # the repaired state is the new baseline, so no start event follows
        result = await poller.check_for_changes()
        self.assertFalse(result.changed)

    async def test_force_check_offline_clears_session(self) -> None:
        poller = self._poller(PersistedState(is_live=True, stream_title="Foo", stream_started_at="T0"))

        snapshot = await poller.force_check()

        self.assertFalse(snapshot.is_live)
        self.assertFalse(poller.state.is_live)
        self.assertIsNone(poller.state.stream_title)

    async def test_force_check_failure_returns_none(self) -> None:
        poller = self._poller(PersistedState(is_live=True, stream_title="Foo"))
        self.client.get_live_snapshot.return_value = FetchFailure("down")

        self.assertIsNone(await poller.force_check())
        self.assertTrue(poller.state.is_live)

    async def test_peek_leaves_state_untouched(self) -> None:
        poller = self._poller()
        self.client.get_live_snapshot.return_value = live()

        snapshot = await poller.peek()

        self.assertTrue(snapshot.is_live)
        self.assertFalse(poller.state.is_live)
        self.assertFalse(self.store.load().is_live)
        result = await poller.check_for_changes()
        self.assertEqual(result.event, StreamEvent.STARTED)

    async def test_reset_state_goes_offline(self) -> None:
        poller = self._poller(PersistedState(is_live=True, stream_title="Foo"))

        state = await poller.reset_state()

        self.assertFalse(state.is_live)
        self.assertFalse(poller.status().is_live)
        self.assertFalse(self.store.load().is_live)
        self.client.get_live_snapshot.return_value = live()
        result = await poller.check_for_changes()
        self.assertEqual(result.event, StreamEvent.STARTED)

    async def test_status_returns_a_copy(self) -> None:
        poller = self._poller(PersistedState(is_live=True, stream_title="Foo"))
        status = poller.status()
        status.stream_title = "changed"
        self.assertEqual(poller.state.stream_title, "Foo")


if __name__ == "__main__":
    unittest.main()
