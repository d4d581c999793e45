"""
Filtres de la sidebar (smart ou liés à un tag) et options de tri/statut
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from feedback.core.config import settings
from feedback.models.tag import Tag


class Status(str, Enum):
    ALL = "all"
    OPEN = "open"
    CLOSED = "closed"


class SortType(str, Enum):
    CREATION_DATE = "creation_date"
    MODIFICATION_DATE = "modification_date"


ALL_FILTER_ID = uuid.UUID(int=1)
RECENT_FILTER_ID = uuid.UUID(int=2)


@dataclass(eq=False)
class Filter:
    id: uuid.UUID
    name: str
    icon: str
    min_modification_date: datetime = datetime.min
    tag: Optional[Tag] = None

    @property
    def active_issue_count(self) -> int:
        return self.tag.active_issue_count if self.tag is not None else 0

    @property
    def is_smart(self) -> bool:
        return self.tag is None

    # égalité/hash sur l'id seulement, comme une sélection dans une liste
    def __eq__(self, other):
        return isinstance(other, Filter) and other.id == self.id

    def __hash__(self):
        return hash(self.id)

    @classmethod
    def all(cls) -> "Filter":
        return cls(id=ALL_FILTER_ID, name="All Issues", icon="tray")

    @classmethod
    def recent(cls, days: int | None = None) -> "Filter":
        days = settings.RECENT_DAYS if days is None else days
        return cls(
            id=RECENT_FILTER_ID,
            name="Recent Issues",
            icon="clock",
            min_modification_date=datetime.utcnow() - timedelta(days=days),
        )

    @classmethod
    def for_tag(cls, tag: Tag) -> "Filter":
        return cls(id=tag.id, name=tag.safe_name, icon="tag.fill", tag=tag)


@dataclass
class IssueQuery:
    """Tout ce qui compose une requête d'issues"""
    filter: Filter = field(default_factory=Filter.all)
    search_text: str = ""
    tokens: list = field(default_factory=list)
    filter_enabled: bool = False
    priority: int = -1  # -1 = pas de contrainte
    status: Status = Status.ALL
    sort_type: SortType = SortType.CREATION_DATE
    newest_first: bool = True
