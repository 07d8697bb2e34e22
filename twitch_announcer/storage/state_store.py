import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

log = logging.getLogger(__name__)

# dataclass field -> key in the JSON record
_WIRE_KEYS = {
    "last_stream_id": "lastStreamId",
    "is_live": "isLive",
    "last_checked_at": "lastCheckedAt",
    "stream_title": "streamTitle",
    "stream_category": "streamCategory",
    "stream_started_at": "streamStartedAt",
}


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PersistedState:
    """Last observed state of the tracked broadcaster.

    When ``is_live`` is false the title, category and start time are None.
    """
    last_stream_id: Optional[str] = None
    is_live: bool = False
    last_checked_at: Optional[str] = None
    stream_title: Optional[str] = None
    stream_category: Optional[str] = None
    stream_started_at: Optional[str] = None

    def to_dict(self):
        data = asdict(self)
        return {_WIRE_KEYS[k]: v for k, v in data.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "PersistedState":
        if not isinstance(data, dict):
            raise ValueError(f"state record must be an object, got {type(data).__name__}")
        kwargs = {field: data.get(key) for field, key in _WIRE_KEYS.items()}
        # only a real JSON true counts as live
        kwargs["is_live"] = kwargs["is_live"] is True
        state = cls(**kwargs)
        if not state.is_live:
            state.clear_session()
        return state

    def clear_session(self):
        self.stream_title = None
        self.stream_category = None
        self.stream_started_at = None


class StateStore:
    """JSON file holding the single PersistedState record."""

    def __init__(self, path: Path, clock: Callable[[], str] = _utcnow_iso):
        self.path = Path(path)
        self._clock = clock

    def load(self) -> PersistedState:
        if not self.path.exists():
            log.info("No state file at %s, starting offline", self.path)
            state = PersistedState()
            self.save(state)
            return state
        try:
            with self.path.open("r", encoding="utf-8") as f:
                state = PersistedState.from_dict(json.load(f))
        except (OSError, ValueError, TypeError) as e:
            log.error("Failed to load state from %s: %s; falling back to offline defaults", self.path, e)
            state = PersistedState()
            self.save(state)
            return state
        log.info("Loaded stream state: %s%s", "LIVE" if state.is_live else "OFFLINE",
                 f" ({state.stream_title})" if state.stream_title else "")
        return state

    def save(self, state: PersistedState) -> bool:
        """Stamp ``last_checked_at`` and overwrite the record.

        Returns False when the write failed; the error is logged, not raised.
        """
        state.last_checked_at = self._clock()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, ensure_ascii=False, indent=2)
            tmp.replace(self.path)
        except OSError as e:
            log.error("Failed to save state to %s: %s", self.path, e)
            return False
        log.debug("State saved to %s", self.path)
        return True

    def reset_state(self) -> PersistedState:
        state = PersistedState()
        self.save(state)
        log.info("Stream state reset to offline")
        return state
