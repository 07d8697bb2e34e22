from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class LiveSnapshot:
    is_live: bool
    session_id: Optional[str] = None
    title: Optional[str] = None
    category: Optional[str] = None
    category_id: Optional[str] = None
    viewer_count: Optional[int] = None
    started_at: Optional[str] = None
    thumbnail_url: Optional[str] = None

    @classmethod
    def offline(cls) -> "LiveSnapshot":
        return cls(is_live=False)


@dataclass(frozen=True)
class FetchFailure:
    """Returned instead of a snapshot when Twitch could not be queried."""
    reason: str


SnapshotResult = Union[LiveSnapshot, FetchFailure]
