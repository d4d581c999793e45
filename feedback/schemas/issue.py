from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime, time
from uuid import UUID

from feedback.schemas.tag import TagSummary


class IssueUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    priority: Optional[int] = Field(default=None, ge=0, le=2)
    is_completed: Optional[bool] = None
    reminder_enabled: Optional[bool] = None
    reminder_time: Optional[time] = None


class IssueResponse(BaseModel):
    id: UUID
    title: str = Field(validation_alias=AliasChoices("safe_title", "title"))
    content: str = Field(validation_alias=AliasChoices("safe_content", "content"))
    creation_date: datetime = Field(validation_alias=AliasChoices("safe_creation_date", "creation_date"))
    modification_date: datetime = Field(validation_alias=AliasChoices("safe_modification_date", "modification_date"))
    priority: int
    is_completed: bool
    status: str = Field(validation_alias=AliasChoices("status_label", "status"))
    reminder_enabled: bool
    reminder_time: Optional[time]
    tags: List[TagSummary] = Field(validation_alias=AliasChoices("sorted_tags", "tags"))
    tag_list: str

    model_config = ConfigDict(from_attributes=True)
