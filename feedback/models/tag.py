"""Tag model"""

import uuid

from sqlalchemy import Column, String, Uuid
from sqlalchemy.orm import relationship

from feedback.core.database import Base
from feedback.models.issue import issue_tags


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=True)

    # supprimer un tag retire seulement les lignes de jointure, jamais les issues
    issues = relationship("Issue", secondary=issue_tags, back_populates="tags", collection_class=set)

    def __init__(self, **kwargs):
        kwargs.setdefault("id", uuid.uuid4())
        super().__init__(**kwargs)

    @property
    def safe_name(self) -> str:
        return self.name or ""

    @property
    def active_issues(self) -> list:
        return [issue for issue in (self.issues or ()) if not issue.is_completed]

    @property
    def active_issue_count(self) -> int:
        return len(self.active_issues)

    def sort_key(self) -> tuple:
        # deux tags peuvent avoir le même nom : l'uuid départage
        return (self.safe_name.lower(), str(self.id))

    def __lt__(self, other: "Tag") -> bool:
        return self.sort_key() < other.sort_key()

    def __repr__(self):
        return f"<Tag {self.id} {self.safe_name!r}>"
