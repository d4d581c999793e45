from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from uuid import UUID


class TagUpdate(BaseModel):
    name: str


class TagSummary(BaseModel):
    """Tag tel qu'il apparaît dans une issue"""

    id: UUID
    name: str = Field(validation_alias=AliasChoices("safe_name", "name"))

    model_config = ConfigDict(from_attributes=True)


class TagResponse(TagSummary):
    active_issue_count: int
