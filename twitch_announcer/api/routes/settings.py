from fastapi import APIRouter
from pydantic import BaseModel, Field
from typing import Dict, Optional
from twitch_announcer.config.settings import settings

router = APIRouter(prefix="/settings", tags=["settings"])

dynamic_overrides: Dict[str, str] = {}

_service = None

class SettingsView(BaseModel):
    twitch_username: Optional[str]
    channel_id: Optional[str]
    poll_interval_min: int
    update_threshold_min: int
    update_tick_sec: int
    announce_stream_end: bool
    state_file: str
    log_format: str
    metrics_port: int
    api_port: int
    overrides: Dict[str, str]

class SettingsPatch(BaseModel):
    poll_interval_min: Optional[int] = Field(None, ge=1, le=1440)
    update_threshold_min: Optional[int] = Field(None, ge=0, le=1440)
    announce_stream_end: Optional[bool] = None

@router.get("", response_model=SettingsView)
async def get_settings():
    return SettingsView(
        twitch_username=settings.twitch_username,
        channel_id=settings.channel_id,
        poll_interval_min=settings.poll_interval_min,
        update_threshold_min=settings.update_threshold_min,
        update_tick_sec=settings.update_tick_sec,
        announce_stream_end=settings.announce_stream_end,
        state_file=settings.state_file,
        log_format=settings.log_format,
        metrics_port=settings.metrics_port,
        api_port=settings.api_port,
        overrides=dynamic_overrides,
    )

@router.patch("", response_model=SettingsView)
async def patch_settings(patch: SettingsPatch):
    if patch.poll_interval_min is not None:
        settings.poll_interval_min = patch.poll_interval_min
        dynamic_overrides["poll_interval_min"] = str(patch.poll_interval_min)
        if _service is not None:
            _service.set_poll_interval(patch.poll_interval_min * 60)
    if patch.update_threshold_min is not None:
        settings.update_threshold_min = patch.update_threshold_min
        dynamic_overrides["update_threshold_min"] = str(patch.update_threshold_min)
        if _service is not None:
            _service.controller.threshold_min = patch.update_threshold_min
    if patch.announce_stream_end is not None:
        settings.announce_stream_end = patch.announce_stream_end
        dynamic_overrides["announce_stream_end"] = str(patch.announce_stream_end).lower()
        if _service is not None:
            _service.announce_stream_end = patch.announce_stream_end
    return await get_settings()

def set_service(service):
    global _service
    _service = service
