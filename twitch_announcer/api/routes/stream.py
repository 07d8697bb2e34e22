import logging
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional

from twitch_announcer.announcement.controller import NoActiveAnnouncement
from twitch_announcer.telegram.transport import TelegramError

log = logging.getLogger(__name__)

router = APIRouter(prefix="/stream", tags=["stream"])

_service = None

class StateView(BaseModel):
    is_live: bool
    last_stream_id: Optional[str] = None
    last_checked_at: Optional[str] = None
    stream_title: Optional[str] = None
    stream_category: Optional[str] = None
    stream_started_at: Optional[str] = None

class AnnouncementView(BaseModel):
    state: str
    message_id: Optional[int] = None
    elapsed_minutes: int
    threshold_minutes: int

class StatusResponse(BaseModel):
    stream: StateView
    announcement: AnnouncementView

class SnapshotView(BaseModel):
    is_live: bool
    title: Optional[str] = None
    category: Optional[str] = None
    viewer_count: Optional[int] = None
    started_at: Optional[str] = None

class CheckResponse(BaseModel):
    snapshot: SnapshotView
    stream: StateView

class AnnounceRequest(BaseModel):
    title: Optional[str] = None

class ActionResponse(BaseModel):
    status: str
    detail: str
    message_id: Optional[int] = None

def _require_service():
    if _service is None:
        raise HTTPException(503, "Announcer service not available")
    return _service

def _state_view(state) -> StateView:
    return StateView(
        is_live=state.is_live,
        last_stream_id=state.last_stream_id,
        last_checked_at=state.last_checked_at,
        stream_title=state.stream_title,
        stream_category=state.stream_category,
        stream_started_at=state.stream_started_at,
    )

@router.get("/status", response_model=StatusResponse)
async def status():
    service = _require_service()
    controller = service.controller
    handle = controller.handle
    return StatusResponse(
        stream=_state_view(service.poller.status()),
        announcement=AnnouncementView(
            state=controller.state.value,
            message_id=handle.message_ref if handle else None,
            elapsed_minutes=controller.elapsed_minutes(),
            threshold_minutes=controller.threshold_min,
        ),
    )

@router.post("/check", response_model=CheckResponse)
async def force_check():
    service = _require_service()
    snapshot = await service.poller.force_check()
    if snapshot is None:
        raise HTTPException(502, "Could not get data from the Twitch API")
    return CheckResponse(
        snapshot=SnapshotView(
            is_live=snapshot.is_live,
            title=snapshot.title,
            category=snapshot.category,
            viewer_count=snapshot.viewer_count,
            started_at=snapshot.started_at,
        ),
        stream=_state_view(service.poller.status()),
    )

@router.post("/reset", response_model=ActionResponse)
async def reset():
    service = _require_service()
    await service.poller.reset_state()
    return ActionResponse(status="reset", detail="Stream state reset; the stream is now considered offline")

@router.post("/announce", response_model=ActionResponse)
async def announce(req: AnnounceRequest):
    service = _require_service()
    try:
        message_id = await service.announce_manually(req.title)
    except TelegramError as e:
        log.error("Manual announcement failed: %s", e)
        raise HTTPException(502, f"Failed to publish announcement: {e}")
    return ActionResponse(status="sent", detail="Announcement published to the channel", message_id=message_id)

@router.post("/update-stats", response_model=ActionResponse)
async def update_stats():
    service = _require_service()
    # read-only: state transitions are left to the next poll cycle
    snapshot = await service.poller.peek()
    try:
        minutes = await service.controller.force_update(snapshot if snapshot and snapshot.is_live else None)
    except NoActiveAnnouncement as e:
        raise HTTPException(409, f"No active stream announcement: {e}")
    except RuntimeError as e:
        raise HTTPException(502, f"Failed to update announcement: {e}")
    return ActionResponse(status="updated", detail=f"Announcement updated at {minutes} min")

@router.post("/test", response_model=ActionResponse)
async def test_message():
    service = _require_service()
    try:
        message_id = await service.send_test_message()
    except TelegramError as e:
        raise HTTPException(502, f"Failed to send test message: {e}")
    return ActionResponse(status="sent", detail="Test message sent to the channel", message_id=message_id)

def set_service(service):
    global _service
    _service = service
