from pydantic import BaseModel


class AwardResponse(BaseModel):
    id: str
    name: str
    description: str
    color: str
    criterion: str
    value: int
    image: str
    earned: bool
