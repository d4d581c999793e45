"""Issue model"""

import uuid
from datetime import datetime, time
from enum import IntEnum

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Time, Table, ForeignKey, Uuid, event
from sqlalchemy.orm import relationship, Session

from feedback.core.database import Base


class Priority(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2


# table de jointure issue <-> tag, aucune des deux entités ne possède l'autre
issue_tags = Table(
    "issue_tags",
    Base.metadata,
    Column("issue_id", Uuid, ForeignKey("issues.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Uuid, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Issue(Base):
    __tablename__ = "issues"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    title = Column(String, nullable=True)
    content = Column(String, nullable=True)
    creation_date = Column(DateTime, default=datetime.utcnow, index=True)
    modification_date = Column(DateTime, default=datetime.utcnow, index=True)
    priority = Column(Integer, default=Priority.MEDIUM, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)

    reminder_enabled = Column(Boolean, default=False, nullable=False)
    reminder_time = Column(Time, nullable=True)

    tags = relationship("Tag", secondary=issue_tags, back_populates="issues", collection_class=set)

    def __init__(self, **kwargs):
        kwargs.setdefault("id", uuid.uuid4())
        kwargs.setdefault("priority", Priority.MEDIUM)
        kwargs.setdefault("is_completed", False)
        kwargs.setdefault("reminder_enabled", False)
        super().__init__(**kwargs)

    @property
    def safe_title(self) -> str:
        return self.title or ""

    @safe_title.setter
    def safe_title(self, value: str):
        self.title = value

    @property
    def safe_content(self) -> str:
        return self.content or ""

    @safe_content.setter
    def safe_content(self, value: str):
        self.content = value

    @property
    def safe_creation_date(self) -> datetime:
        return self.creation_date or datetime.utcnow()

    @property
    def safe_modification_date(self) -> datetime:
        return self.modification_date or datetime.utcnow()

    @property
    def safe_reminder_time(self) -> time:
        return self.reminder_time or datetime.now().time().replace(microsecond=0)

    @property
    def sorted_tags(self) -> list:
        return sorted(self.tags or ())

    @property
    def status_label(self) -> str:
        return "Closed" if self.is_completed else "Open"

    @property
    def tag_list(self) -> str:
        if not self.tags:
            return "No tags"
        return ", ".join(tag.safe_name for tag in self.sorted_tags)

    def sort_key(self) -> tuple:
        return (self.safe_title.lower(), self.safe_creation_date)

    def __lt__(self, other: "Issue") -> bool:
        return self.sort_key() < other.sort_key()

    def __repr__(self):
        return f"<Issue {self.id} {self.safe_title!r}>"


@event.listens_for(Session, "before_flush")
def touch_modified_issues(session, flush_context, instances):
    # chaque écriture persistée avance modification_date, jamais en arrière
    now = datetime.utcnow()
    for obj in session.dirty:
        if isinstance(obj, Issue) and session.is_modified(obj):
            previous = obj.modification_date
            obj.modification_date = now if previous is None or previous < now else previous
