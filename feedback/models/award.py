"""Award model (chargé depuis awards.json, jamais modifié)"""

from pydantic import BaseModel, ConfigDict

CRITERIA = ("issues", "closed", "tags", "unlock")


class Award(BaseModel):
    name: str
    description: str
    color: str
    criterion: str  # "issues", "closed", "tags", "unlock"
    value: int
    image: str

    model_config = ConfigDict(frozen=True)

    @property
    def id(self) -> str:
        return self.name
