import logging
from typing import Optional

import httpx

from twitch_announcer.announcement.controller import ChannelRef, EditOutcome, MessageRef

log = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"

NOT_MODIFIED_MARKER = "message is not modified"
NOT_FOUND_MARKERS = ("message to edit not found", "message can't be edited", "chat not found")


class TelegramError(Exception):
    def __init__(self, description: str, status_code: Optional[int] = None):
        super().__init__(description)
        self.description = description
        self.status_code = status_code


class TelegramTransport:
    def __init__(self, token: str, http: Optional[httpx.AsyncClient] = None):
        self._base = f"{TELEGRAM_API_BASE}/bot{token}"
        self._http = http or httpx.AsyncClient(timeout=15)

    async def _call(self, method: str, payload: dict) -> dict:
        try:
            r = await self._http.post(f"{self._base}/{method}", json=payload)
        except httpx.HTTPError as e:
            raise TelegramError(f"{method} request failed: {e}") from e
        try:
            data = r.json()
        except ValueError:
            data = {}
        if r.status_code >= 400 or not data.get("ok"):
            raise TelegramError(data.get("description") or f"HTTP {r.status_code}", r.status_code)
        return data.get("result") or {}

    async def send_message(self, chat_id: ChannelRef, text: str, reply_markup: Optional[dict] = None) -> MessageRef:
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup
        result = await self._call("sendMessage", payload)
        message_id = result.get("message_id")
        log.info("Sent message %s to %s", message_id, chat_id)
        return message_id

    async def edit_message(self, chat_id: ChannelRef, message_id: MessageRef, text: str,
                           reply_markup: Optional[dict] = None) -> EditOutcome:
        payload = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup
        try:
            await self._call("editMessageText", payload)
        except TelegramError as e:
            description = e.description.lower()
            if NOT_MODIFIED_MARKER in description:
                return EditOutcome.UNMODIFIED
            if any(marker in description for marker in NOT_FOUND_MARKERS):
                return EditOutcome.NOT_FOUND
            log.error("editMessageText failed for %s/%s: %s", chat_id, message_id, e.description)
            return EditOutcome.ERROR
        return EditOutcome.OK

    async def aclose(self):
        await self._http.aclose()
