from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

REQUIRED_FIELDS = {
    "telegram_bot_token": "BOT_TOKEN",
    "channel_id": "CHANNEL_ID",
    "twitch_client_id": "TWITCH_CLIENT_ID",
    "twitch_client_secret": "TWITCH_CLIENT_SECRET",
    "twitch_username": "TWITCH_USERNAME",
}

class Settings(BaseSettings):
    telegram_bot_token: Optional[str] = Field(default=None, alias="BOT_TOKEN")
    channel_id: Optional[str] = Field(default=None, alias="CHANNEL_ID")
    twitch_client_id: Optional[str] = Field(default=None, alias="TWITCH_CLIENT_ID")
    twitch_client_secret: Optional[str] = Field(default=None, alias="TWITCH_CLIENT_SECRET")
    twitch_username: Optional[str] = Field(default=None, alias="TWITCH_USERNAME")
    poll_interval_min: int = Field(default=5, ge=1, alias="CHECK_INTERVAL")
    update_threshold_min: int = Field(default=10, ge=0, alias="UPDATE_THRESHOLD_MINUTES")
    update_tick_sec: int = Field(default=60, ge=1, alias="UPDATE_TICK_SEC")
    first_check_delay_sec: int = Field(default=10, ge=0, alias="FIRST_CHECK_DELAY_SEC")
    state_file: str = Field(default="stream_state.json", alias="STATE_FILE")
    announce_stream_end: bool = Field(default=True, alias="ANNOUNCE_STREAM_END")
    log_format: str = Field(default="plain", alias="LOG_FORMAT")
    metrics_port: int = Field(default=9100, alias="METRICS_PORT")
    api_port: int = Field(default=8000, alias="API_PORT")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)

    def missing_required(self) -> List[str]:
        """Env names of required options that are unset or blank."""
        return [env for name, env in REQUIRED_FIELDS.items() if not (getattr(self, name) or "").strip()]

    @property
    def twitch_url(self) -> str:
        return f"https://www.twitch.tv/{self.twitch_username}" if self.twitch_username else "https://www.twitch.tv"

settings = Settings()
