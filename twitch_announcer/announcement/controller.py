import enum
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Union

from twitch_announcer.orchestration.ticker import Ticker
from twitch_announcer.twitch.models import LiveSnapshot
from twitch_announcer.metrics.registry import (
    ANNOUNCEMENT_STATE_CODES, announcement_edits_total, announcement_state,
)

log = logging.getLogger(__name__)

ChannelRef = Union[int, str]
MessageRef = int


class AnnouncementState(str, enum.Enum):
    IDLE = "idle"
    ANNOUNCED = "announced"
    UPDATING = "updating"


class EditOutcome(str, enum.Enum):
    OK = "ok"
    UNMODIFIED = "unmodified"
    NOT_FOUND = "not_found"
    ERROR = "error"


class NoActiveAnnouncement(RuntimeError):
    pass


class AnnouncementEditor(Protocol):
    async def edit_announcement(self, channel_ref: ChannelRef, message_ref: MessageRef,
                                snapshot: LiveSnapshot, elapsed_minutes: int) -> EditOutcome:
        ...


TickerFactory = Callable[[float, Callable[[], Awaitable[None]], str], Ticker]


def _default_ticker(interval: float, callback, name: str) -> Ticker:
    return Ticker(interval, callback, name=name)


@dataclass
class AnnouncementHandle:
    channel_ref: ChannelRef
    message_ref: MessageRef
    session_started_at: float
    snapshot: LiveSnapshot
    is_active: bool = True
    periodic_updates_engaged: bool = False


class AnnouncementController:
    """Owns the single "stream is live" message and its periodic edits.

    No edit is made until ``threshold_min`` whole minutes have passed since the
    message was registered, except through ``force_update``.
    """

    def __init__(self, editor: AnnouncementEditor, threshold_min: int = 10, tick_interval_sec: float = 60,
                 clock: Callable[[], float] = time.monotonic, ticker_factory: TickerFactory = _default_ticker):
        self.editor = editor
        self.threshold_min = threshold_min
        self.tick_interval_sec = tick_interval_sec
        self._clock = clock
        self._ticker_factory = ticker_factory
        self._ticker: Optional[Ticker] = None
        self.handle: Optional[AnnouncementHandle] = None
        announcement_state.set(ANNOUNCEMENT_STATE_CODES['idle'])

    @property
    def state(self) -> AnnouncementState:
        if self.handle is None or not self.handle.is_active:
            return AnnouncementState.IDLE
        if self.handle.periodic_updates_engaged:
            return AnnouncementState.UPDATING
        return AnnouncementState.ANNOUNCED

    def _publish_state(self):
        announcement_state.set(ANNOUNCEMENT_STATE_CODES[self.state.value])

    def elapsed_minutes(self) -> int:
        if self.handle is None:
            return 0
        return int(max(0.0, self._clock() - self.handle.session_started_at) // 60)

    def threshold_reached(self) -> bool:
        return self.handle is not None and self.elapsed_minutes() >= self.threshold_min

    def set_message_info(self, channel_ref: ChannelRef, message_ref: MessageRef, snapshot: LiveSnapshot):
        """Track a freshly published announcement and start the update ticker."""
        self._stop_ticker()
        self.handle = AnnouncementHandle(
            channel_ref=channel_ref,
            message_ref=message_ref,
            session_started_at=self._clock(),
            snapshot=snapshot,
        )
        self._ticker = self._ticker_factory(self.tick_interval_sec, self.tick, "announcement-updates")
        self._ticker.start()
        self._publish_state()
        log.info("Tracking announcement message %s in %s", message_ref, channel_ref)

    def record_snapshot(self, snapshot: LiveSnapshot):
        """Remember the latest snapshot for the next edit without editing now."""
        if self.handle is not None and snapshot.is_live:
            self.handle.snapshot = snapshot

    async def tick(self):
        handle = self.handle
        if handle is None or not handle.is_active:
            return
        minutes = self.elapsed_minutes()
        if minutes < self.threshold_min:
            log.debug("Announcement edits start in %d min", self.threshold_min - minutes)
            return
        if not handle.periodic_updates_engaged:
            log.info("Stream live for %d min, starting periodic announcement edits", minutes)
        outcome = await self._edit(handle, minutes)
        if outcome in (EditOutcome.OK, EditOutcome.UNMODIFIED) and self.handle is handle:
            handle.periodic_updates_engaged = True
            self._publish_state()

    async def update_viewers(self, snapshot: LiveSnapshot) -> bool:
        """Edit immediately with ``snapshot`` if periodic edits are engaged.

        Before the threshold the snapshot is only recorded. Returns whether an
        edit was attempted.
        """
        self.record_snapshot(snapshot)
        if self.state is not AnnouncementState.UPDATING:
            if self.state is AnnouncementState.ANNOUNCED:
                log.info("Skipping viewer update, %d/%d min elapsed", self.elapsed_minutes(), self.threshold_min)
            return False
        await self._edit(self.handle, self.elapsed_minutes())
        return True

    async def force_update(self, snapshot: Optional[LiveSnapshot] = None) -> int:
        if self.state is AnnouncementState.IDLE:
            raise NoActiveAnnouncement("no active stream announcement")
        if snapshot is not None:
            self.record_snapshot(snapshot)
        minutes = self.elapsed_minutes()
        if minutes < self.threshold_min:
            log.info("Forced announcement edit before threshold (%d min)", minutes)
        outcome = await self._edit(self.handle, minutes)
        if outcome is EditOutcome.NOT_FOUND:
            raise NoActiveAnnouncement("announcement message no longer exists")
        if outcome is EditOutcome.ERROR:
            raise RuntimeError("announcement edit failed")
        return minutes

    async def _edit(self, handle: AnnouncementHandle, minutes: int) -> EditOutcome:
        try:
            outcome = await self.editor.edit_announcement(handle.channel_ref, handle.message_ref,
                                                          handle.snapshot, minutes)
        except Exception as e:
            log.exception("Announcement edit raised: %s", e)
            outcome = EditOutcome.ERROR
        announcement_edits_total.labels(outcome=outcome.value).inc()
        if outcome is EditOutcome.OK:
            log.info("Announcement updated: %d min, %s viewers", minutes, handle.snapshot.viewer_count)
        elif outcome is EditOutcome.NOT_FOUND:
            log.warning("Announcement message %s is gone, stopping updates", handle.message_ref)
            if self.handle is handle:
                self.reset()
        elif outcome is EditOutcome.ERROR:
            log.error("Announcement edit failed for message %s", handle.message_ref)
        return outcome

    def _stop_ticker(self):
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None

    def reset(self):
        self._stop_ticker()
        if self.handle is not None:
            self.handle.is_active = False
            log.info("Announcement tracking stopped")
        self.handle = None
        self._publish_state()

    async def aclose(self):
        if self._ticker is not None:
            await self._ticker.aclose()
        self.reset()
