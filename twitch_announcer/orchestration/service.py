import json
import logging
import sys
from typing import Optional

import httpx
import uvicorn
from prometheus_client import start_http_server

from twitch_announcer.announcement.controller import (
    AnnouncementController, ChannelRef, EditOutcome, MessageRef,
)
from twitch_announcer.api.server import app, set_service
from twitch_announcer.config.settings import Settings, settings
from twitch_announcer.metrics.registry import announcements_sent_total
from twitch_announcer.orchestration.ticker import Ticker
from twitch_announcer.storage.state_store import StateStore
from twitch_announcer.telegram import messages
from twitch_announcer.telegram.transport import TelegramError, TelegramTransport
from twitch_announcer.twitch.api_client import TwitchClient
from twitch_announcer.twitch.models import LiveSnapshot
from twitch_announcer.twitch.poller import ChangeResult, StreamEvent, StreamPoller

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    def format(self, record):
        base = {
            'time': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
        }
        if record.exc_info:
            base['exc'] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def configure_logging(log_format: str = "plain"):
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    if log_format != 'json':
        return
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(logging.INFO)


class AnnouncementService:
    """Hands poll classifications to the transport and the controller."""

    def __init__(self, poller: StreamPoller, transport: TelegramTransport, channel_id: ChannelRef,
                 watch_url: str, announce_stream_end: bool = True, threshold_min: int = 10,
                 update_tick_sec: float = 60, controller: Optional[AnnouncementController] = None):
        self.poller = poller
        self.transport = transport
        self.channel_id = channel_id
        self.watch_url = watch_url
        self.announce_stream_end = announce_stream_end
        self.controller = controller or AnnouncementController(
            self, threshold_min=threshold_min, tick_interval_sec=update_tick_sec,
        )
        self.poll_ticker: Optional[Ticker] = None

    async def edit_announcement(self, channel_ref: ChannelRef, message_ref: MessageRef,
                                snapshot: LiveSnapshot, elapsed_minutes: int) -> EditOutcome:
        text = messages.render_live_update(snapshot, elapsed_minutes)
        return await self.transport.edit_message(channel_ref, message_ref, text,
                                                 messages.watch_keyboard(self.watch_url))

    async def run_check(self) -> ChangeResult:
        changes = await self.poller.check_for_changes()
        if changes.error:
            log.warning("Twitch check failed, keeping previous state")
            return changes
        if not changes.changed:
            if changes.snapshot is not None:
                self.controller.record_snapshot(changes.snapshot)
            return changes

        if changes.event is StreamEvent.STARTED:
            await self._announce_start(changes.snapshot)
        elif changes.event is StreamEvent.ENDED:
            await self._announce_end()
        elif changes.event is StreamEvent.UPDATED:
            log.info("Stream updated: %s", changes.snapshot.title)
            await self.controller.update_viewers(changes.snapshot)
        return changes

    async def _announce_start(self, snapshot: LiveSnapshot):
        # the live state is already persisted, so a failed send is not retried
        try:
            message_id = await self.transport.send_message(
                self.channel_id, messages.render_announcement(snapshot), messages.watch_keyboard(self.watch_url),
            )
        except TelegramError as e:
            log.error("Failed to publish stream announcement: %s", e)
            return
        announcements_sent_total.labels(kind="start").inc()
        self.controller.set_message_info(self.channel_id, message_id, snapshot)

    async def _announce_end(self):
        self.controller.reset()
        if not self.announce_stream_end:
            return
        try:
            await self.transport.send_message(
                self.channel_id, messages.render_stream_end(), messages.watch_keyboard(self.watch_url),
            )
        except TelegramError as e:
            log.error("Failed to publish stream end message: %s", e)
            return
        announcements_sent_total.labels(kind="end").inc()

    async def announce_manually(self, title: Optional[str] = None) -> MessageRef:
        snapshot = LiveSnapshot(is_live=True, title=title or "🔴 СТРИМ НАЧАЛСЯ", category="Не указана")
        message_id = await self.transport.send_message(
            self.channel_id, messages.render_announcement(snapshot), messages.watch_keyboard(self.watch_url),
        )
        announcements_sent_total.labels(kind="manual").inc()
        log.info("Manual announcement posted: %s", snapshot.title)
        return message_id

    async def send_test_message(self) -> MessageRef:
        message_id = await self.transport.send_message(
            self.channel_id, messages.render_test_message(), messages.watch_keyboard(self.watch_url),
        )
        announcements_sent_total.labels(kind="test").inc()
        return message_id

    def start(self, poll_interval_sec: float, first_delay_sec: float):
        self.poll_ticker = Ticker(poll_interval_sec, self.run_check, name="twitch-poll", initial_delay=first_delay_sec)
        self.poll_ticker.start()
        log.info("Checking Twitch every %ds (first check in %ds)", poll_interval_sec, first_delay_sec)

    def set_poll_interval(self, seconds: float):
        if self.poll_ticker is not None:
            self.poll_ticker.interval = seconds

    async def aclose(self):
        if self.poll_ticker is not None:
            await self.poll_ticker.aclose()
        await self.controller.aclose()


def build_service(cfg: Settings, http: httpx.AsyncClient) -> AnnouncementService:
    client = TwitchClient(cfg.twitch_client_id, cfg.twitch_client_secret, cfg.twitch_username, http=http)
    poller = StreamPoller(client, StateStore(cfg.state_file))
    transport = TelegramTransport(cfg.telegram_bot_token, http=http)
    return AnnouncementService(
        poller,
        transport,
        cfg.channel_id,
        cfg.twitch_url,
        announce_stream_end=cfg.announce_stream_end,
        threshold_min=cfg.update_threshold_min,
        update_tick_sec=cfg.update_tick_sec,
    )


async def main():
    configure_logging(settings.log_format)
    if settings.metrics_port:
        start_http_server(settings.metrics_port)
    async with httpx.AsyncClient(timeout=15) as http:
        service = build_service(settings, http)
        set_service(service)
        service.start(settings.poll_interval_min * 60, settings.first_check_delay_sec)
        config = uvicorn.Config(app, host="0.0.0.0", port=settings.api_port, log_level="info", lifespan="on")
        server = uvicorn.Server(config)
        try:
            await server.serve()
        finally:
            log.info("Shutting down")
            await service.aclose()
            set_service(None)
