# Tables (ORM models) – Tutorial table lives here

from enum import Enum
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TutorialType(str, Enum):
    VIDEO = "video"
    PDF = "pdf"


class CaptionStatus(str, Enum):
    NOT_STARTED = "not_started"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class Tutorial(SQLModel, table=True):
    id: str = Field(primary_key=True, index=True)
    title: str
    course: str = Field(index=True)
    type: TutorialType = Field(index=True)
    description: str = ""
    file_name: str
    media_path: str  # public URL, e.g. /uploads/tutorials/intro-1712-42.mp4
    stored_path: str  # absolute path on local disk
    file_size: int = 0
    duration: str = ""
    views: int = 0

    # only the caption workflow writes these
    captions_status: CaptionStatus = Field(default=CaptionStatus.NOT_STARTED, index=True)
    captions_url: Optional[str] = None
    captions_attempt: int = 0

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    @property
    def is_video(self) -> bool:
        return self.type == TutorialType.VIDEO
