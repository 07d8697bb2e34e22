import asyncio
import enum
import logging
import time
from dataclasses import dataclass, replace
from typing import Optional

from .api_client import TwitchClient
from .models import FetchFailure, LiveSnapshot
from twitch_announcer.storage.state_store import PersistedState, StateStore
from twitch_announcer.metrics.registry import (
    last_poll_timestamp, poll_duration_seconds, poll_errors_total, stream_events_total, stream_live,
)

log = logging.getLogger(__name__)


class StreamEvent(str, enum.Enum):
    STARTED = "stream_started"
    ENDED = "stream_ended"
    UPDATED = "stream_updated"


@dataclass(frozen=True)
class ChangeResult:
    changed: bool
    event: Optional[StreamEvent] = None
    snapshot: Optional[LiveSnapshot] = None
    error: bool = False


class StreamPoller:
    """Diffs fresh Twitch snapshots against the persisted state.

    ``check_for_changes`` yields at most one event per call and never raises.
    Persisted state is only replaced once the new record has been built, so a
    failed fetch leaves it exactly as it was.
    """

    def __init__(self, client: TwitchClient, store: StateStore):
        self.client = client
        self.store = store
        self.state = store.load()
        self._lock = asyncio.Lock()
        stream_live.set(1 if self.state.is_live else 0)

    async def _fetch(self) -> Optional[LiveSnapshot]:
        try:
            result = await self.client.get_live_snapshot()
        except Exception as e:
            log.exception("Unexpected error fetching snapshot: %s", e)
            return None
        if isinstance(result, FetchFailure):
            log.warning("Could not fetch stream snapshot: %s", result.reason)
            return None
        return result

    def _commit(self, new_state: PersistedState):
        self.store.save(new_state)
        self.state = new_state
        stream_live.set(1 if new_state.is_live else 0)

    async def check_for_changes(self) -> ChangeResult:
        async with self._lock:
            start = time.monotonic()
            snapshot = await self._fetch()
            poll_duration_seconds.observe(time.monotonic() - start)
            if snapshot is None:
                poll_errors_total.inc()
                return ChangeResult(changed=False, error=True)
            last_poll_timestamp.set_to_current_time()

            was_live = self.state.is_live
            log.debug("Stream was %s, now %s", "live" if was_live else "offline",
                      "live" if snapshot.is_live else "offline")
            event = None
            if snapshot.is_live and not was_live:
                event = StreamEvent.STARTED
                new_state = replace(
                    self.state,
                    is_live=True,
                    last_stream_id=snapshot.session_id,
                    stream_title=snapshot.title,
                    stream_category=snapshot.category,
                    stream_started_at=snapshot.started_at,
                )
                log.info("Stream started: %s", snapshot.title)
            elif was_live and not snapshot.is_live:
                event = StreamEvent.ENDED
                new_state = replace(self.state, is_live=False)
                new_state.clear_session()
                log.info("Stream ended")
            elif was_live and snapshot.title != self.state.stream_title:
                event = StreamEvent.UPDATED
                new_state = replace(self.state, stream_title=snapshot.title, stream_category=snapshot.category)
                log.info("Stream title changed: %r -> %r", self.state.stream_title, snapshot.title)
            else:
                new_state = replace(self.state)

            self._commit(new_state)
            if event is None:
                return ChangeResult(changed=False, snapshot=snapshot)
            stream_events_total.labels(event=event.value).inc()
            return ChangeResult(changed=True, event=event, snapshot=snapshot)

    async def force_check(self) -> Optional[LiveSnapshot]:
        """Overwrite persisted state with ground truth without emitting an event.

        Returns None, leaving state untouched, if Twitch could not be reached.
        """
        async with self._lock:
            snapshot = await self._fetch()
            if snapshot is None:
                return None
            if snapshot.is_live:
                new_state = replace(
                    self.state,
                    is_live=True,
                    last_stream_id=snapshot.session_id,
                    stream_title=snapshot.title,
                    stream_category=snapshot.category,
                    stream_started_at=snapshot.started_at,
                )
            else:
                new_state = replace(self.state, is_live=False)
                new_state.clear_session()
            self._commit(new_state)
            log.info("Forced state refresh: %s", "LIVE" if snapshot.is_live else "OFFLINE")
            return snapshot

    async def peek(self) -> Optional[LiveSnapshot]:
        """Fetch a snapshot without touching persisted state."""
        return await self._fetch()

    async def reset_state(self) -> PersistedState:
        async with self._lock:
            self.state = self.store.reset_state()
            stream_live.set(0)
            return replace(self.state)

    def status(self) -> PersistedState:
        return replace(self.state)
