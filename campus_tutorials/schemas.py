# Pydantic schemas the API returns and accepts (camelCase on the wire)

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .models import CaptionStatus, Tutorial, TutorialType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Full tutorial record (e.g. /api/tutorials, /api/tutorials/{id})
class TutorialOut(CamelModel):
    id: str
    title: str
    course: str
    type: TutorialType
    description: str
    file_name: str
    media_path: str
    file_size: int
    duration: str
    views: int
    captions_status: CaptionStatus
    captions_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_tutorial(cls, tutorial: Tutorial) -> "TutorialOut":
        return cls(
            id=tutorial.id,
            title=tutorial.title,
            course=tutorial.course,
            type=tutorial.type,
            description=tutorial.description,
            file_name=tutorial.file_name,
            media_path=tutorial.media_path,
            file_size=tutorial.file_size,
            duration=tutorial.duration,
            views=tutorial.views,
            captions_status=tutorial.captions_status,
            captions_url=visible_captions_url(tutorial),
            created_at=tutorial.created_at,
            updated_at=tutorial.updated_at,
        )


# POST /api/tutorials response
class TutorialCreated(CamelModel):
    message: str
    tutorial: TutorialOut
    captions_generating: bool


class TutorialUpdated(CamelModel):
    message: str
    tutorial: TutorialOut


# PUT /api/tutorials/{id} body; blank fields keep the stored value
class TutorialUpdate(CamelModel):
    title: Optional[str] = None
    course: Optional[str] = None
    description: Optional[str] = None
    duration: Optional[str] = None


class CaptionStatusOut(CamelModel):
    status: CaptionStatus
    captions_url: Optional[str] = None


class RegenerateOut(CamelModel):
    message: str
    status: CaptionStatus


class ViewsOut(CamelModel):
    views: int


class MessageOut(CamelModel):
    message: str


def visible_captions_url(tutorial: Tutorial) -> Optional[str]:
    """A caption URL is only meaningful once the current attempt completed."""
    if tutorial.captions_status != CaptionStatus.COMPLETED:
        return None
    return tutorial.captions_url
