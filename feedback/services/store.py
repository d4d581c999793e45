"""
Store - propriétaire unique du working set issues/tags

Toutes les mutations passent par ici (une seule Session SQLAlchemy protégée par
un RLock). Les sauvegardes fréquentes (édition de champs) sont regroupées par
queue_save() : un timer en arrière-plan qui appelle save() après une fenêtre
de calme. Si le process meurt avant la fin de la fenêtre, les éditions en
attente sont perdues.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import delete, event, func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import set_committed_value

from feedback.core.config import settings
from feedback.core.database import Base, make_engine, make_session_factory
from feedback.core.settings_store import MemorySettings
from feedback.models.filter import Filter, IssueQuery, SortType, Status
from feedback.models.issue import Issue, Priority, issue_tags
from feedback.models.tag import Tag
from feedback.services import predicate_service
from feedback.services.sample_data import build_sample_data

logger = logging.getLogger(__name__)

PREMIUM_KEY = "full_version_unlocked"
EDITABLE_ISSUE_FIELDS = ("title", "content", "priority", "is_completed", "reminder_enabled", "reminder_time")


def changed_attributes(obj) -> set:
    return {attr.key for attr in inspect(obj).attrs if attr.history.has_changes()}


@dataclass
class StoreChange:
    kind: str  # "will_change", "created", "deleted", "batch_deleted", "merged", "saved", "entitlement"
    objects: list = field(default_factory=list)


class DataStore:

    def __init__(
        self,
        database_url: Optional[str] = None,
        settings_store=None,
        save_delay: Optional[float] = None,
        free_tag_limit: Optional[int] = None,
    ):
        self.database_url = database_url or settings.DATABASE_URL
        self.engine = make_engine(self.database_url)
        Base.metadata.create_all(bind=self.engine)
        self.session = make_session_factory(self.engine)()

        self.settings_store = settings_store if settings_store is not None else MemorySettings()
        self.save_delay = settings.SAVE_DELAY_SECONDS if save_delay is None else save_delay
        self.free_tag_limit = settings.FREE_TAG_LIMIT if free_tag_limit is None else free_tag_limit

        self.selected_filter: Optional[Filter] = Filter.all()
        self.selected_issue: Optional[Issue] = None
        self.save_count = 0  # nombre de commits effectifs

        self._lock = threading.RLock()
        self._observers: List[Callable[[StoreChange], None]] = []
        self._save_timer: Optional[threading.Timer] = None
        self._save_generation = 0
        self._uncommitted_writes = False
        # éditions locales pas encore commit (le reconciler leur donne priorité)
        self._local_edits: dict = {}
        self._local_inserts: set = set()

        # un autoflush (avant un count/query) écrit sans commit : on le retient
        event.listen(self.session, "before_flush", self._record_local_edits)
        event.listen(self.session, "after_flush", self._on_flush)
        event.listen(self.session, "after_commit", self._on_transaction_end)
        event.listen(self.session, "after_rollback", self._on_transaction_end)

    @classmethod
    def in_memory(cls, **kwargs) -> "DataStore":
        return cls(database_url="sqlite://", **kwargs)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def close(self):
        """Flush ce qui reste puis libère la session (fin de process / teardown)"""
        with self._lock:
            self.save()
            self.session.close()
        self.engine.dispose()

    # ============ NOTIFICATIONS ============

    def subscribe(self, callback: Callable[[StoreChange], None]) -> Callable[[], None]:
        self._observers.append(callback)

        def unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def notify(self, kind: str, objects=None):
        change = StoreChange(kind=kind, objects=list(objects or []))
        for callback in list(self._observers):
            try:
                callback(change)
            except Exception:
                logger.exception(f"Store observer failed on {kind}")

    def _on_flush(self, session, flush_context):
        self._uncommitted_writes = True

    def _record_local_edits(self, session, flush_context, instances):
        for obj in session.new:
            self._local_inserts.add(obj)
        for obj in session.dirty:
            self._local_edits.setdefault(obj, set()).update(changed_attributes(obj))

    def _on_transaction_end(self, session):
        self._uncommitted_writes = False
        self._local_edits.clear()
        self._local_inserts.clear()

    def local_edits(self, obj) -> set:
        """Champs modifiés localement depuis le dernier commit, flushés ou non"""
        return self._local_edits.get(obj, set()) | changed_attributes(obj)

    def is_local_only(self, obj) -> bool:
        state = inspect(obj)
        return state.transient or state.pending or obj in self._local_inserts

    # ============ PERSISTENCE ============

    @property
    def has_changes(self) -> bool:
        session = self.session
        if session.new or session.deleted or self._uncommitted_writes:
            return True
        return any(session.is_modified(obj) for obj in session.dirty)

    def save(self) -> bool:
        """
        Écrit les mutations en attente, seulement s'il y en a.
        Annule toujours le queue_save en cours. Un échec d'écriture est loggé
        et la tentative abandonnée ; les objets en mémoire gardent les
        modifications, réécrites au prochain save réussi.
        """
        with self._lock:
            self._cancel_queued_save()
            if not self.has_changes:
                return False
            snapshot = self._pending_snapshot()
            try:
                self.session.commit()
            except SQLAlchemyError as e:
                logger.error(f"Save failed, will retry on next save: {e}")
                self.session.rollback()
                self._restore(snapshot)
                return False
            self.save_count += 1
            self.notify("saved")
            return True

    def _pending_snapshot(self):
        session = self.session
        inserted = set(session.new) | self._local_inserts
        edited = {}
        for obj in (set(session.dirty) | set(self._local_edits)) - inserted:
            values = {}
            for name in self.local_edits(obj):
                value = getattr(obj, name)
                values[name] = set(value) if isinstance(value, set) else value
            edited[obj] = values
        return inserted, edited, set(session.deleted)

    def _restore(self, snapshot):
        # le rollback a expiré (ou expulsé) les objets : on remet les valeurs locales
        inserted, edited, deleted = snapshot
        try:
            for obj in inserted:
                if inspect(obj).transient:
                    self.session.add(obj)
            for obj, values in edited.items():
                for name, value in values.items():
                    setattr(obj, name, value)
            for obj in deleted:
                if inspect(obj).persistent:
                    self.session.delete(obj)
        except SQLAlchemyError as e:
            logger.error(f"Could not restore unsaved changes: {e}")
            self.session.rollback()

    def queue_save(self):
        """Repousse save() de save_delay secondes (debounce)"""
        with self._lock:
            self._cancel_queued_save()
            generation = self._save_generation
            timer = threading.Timer(self.save_delay, self._run_queued_save, args=(generation,))
            timer.daemon = True
            self._save_timer = timer
            timer.start()

    @property
    def save_pending(self) -> bool:
        return self._save_timer is not None

    def _cancel_queued_save(self):
        # le compteur invalide un timer déjà parti mais pas encore entré dans le lock
        self._save_generation += 1
        if self._save_timer is not None:
            self._save_timer.cancel()
            self._save_timer = None

    def _run_queued_save(self, generation: int):
        with self._lock:
            if generation != self._save_generation:
                return
            self.save()

    # ============ CREATE ============

    def create_issue(self) -> Issue:
        with self._lock:
            issue = Issue(title="New issue", creation_date=datetime.utcnow(), priority=Priority.MEDIUM)

            # rattachée au tag sélectionné dans la sidebar
            if self.selected_filter is not None and self.selected_filter.tag is not None:
                issue.tags.add(self.selected_filter.tag)

            self.session.add(issue)
            self.save()
            self.selected_issue = issue
            self.notify("created", [issue])
            return issue

    def can_add_tag(self) -> bool:
        if self.free_tag_limit <= 0 or self.full_version_unlocked:
            return True
        return self.count(Tag) < self.free_tag_limit

    def create_tag(self) -> Optional[Tag]:
        """None si la version gratuite a atteint sa limite de tags"""
        with self._lock:
            if not self.can_add_tag():
                logger.info(f"Tag limit of {self.free_tag_limit} reached, premium required")
                return None

            tag = Tag(name="New tag")
            self.session.add(tag)
            self.save()
            self.notify("created", [tag])
            return tag

    def create(self, kind):
        if kind in (Issue, "issue"):
            return self.create_issue()
        if kind in (Tag, "tag"):
            return self.create_tag()
        raise ValueError(f"unknown entity kind: {kind}")

    def create_sample_data(self, tag_count: int = 5, issues_per_tag: int = 10) -> List[Tag]:
        with self._lock:
            tags = build_sample_data(tag_count, issues_per_tag)
            self.session.add_all(tags)
            self.save()
            self.notify("created", tags)
            return tags

    # ============ DELETE ============

    def delete(self, entity):
        """
        Supprime une issue ou un tag. Les lignes de jointure partent avec
        l'entité ; supprimer un tag ne supprime jamais ses issues.
        """
        with self._lock:
            self.notify("will_change", [entity])

            if isinstance(entity, Issue):
                related, inverse = list(entity.tags), "issues"
                if self.selected_issue is entity:
                    self.selected_issue = None
            else:
                related, inverse = list(entity.issues), "tags"
                if self.selected_filter is not None and self.selected_filter.tag is entity:
                    self.selected_filter = Filter.all()

            try:
                if entity in self.session.new:
                    self.session.flush()
                self.session.delete(entity)
            except SQLAlchemyError as e:
                logger.error(f"Delete of {entity!r} failed: {e}")
                self.session.rollback()
                return

            if self.save():
                # l'autre côté de la relation oublie l'entité sans devenir "modifié"
                for obj in related:
                    remaining = [o for o in getattr(obj, inverse) if o is not entity]
                    set_committed_value(obj, inverse, remaining)

            self.notify("deleted", [entity])

    def batch_delete(self, kind) -> int:
        """
        Supprime toutes les entités d'un type en une requête, sans les charger.
        Retourne le nombre de lignes supprimées.
        """
        model = Issue if kind in (Issue, "issue") else Tag if kind in (Tag, "tag") else None
        if model is None:
            raise ValueError(f"unknown entity kind: {kind}")

        with self._lock:
            try:
                self.session.flush()
                # tout le type part, donc toutes les lignes de jointure aussi
                self.session.execute(delete(issue_tags))
                result = self.session.execute(delete(model))
                self._uncommitted_writes = True
            except SQLAlchemyError as e:
                logger.error(f"Batch delete of {model.__tablename__} failed: {e}")
                self.session.rollback()
                return 0

            # l'autre type reste en mémoire : ses collections sont rechargées au prochain accès
            other, attr = (Tag, "issues") if model is Issue else (Issue, "tags")
            for obj in list(self.session.identity_map.values()):
                if isinstance(obj, other):
                    self.session.expire(obj, [attr])

            if isinstance(self.selected_issue, Issue) and model is Issue:
                self.selected_issue = None
            if model is Tag and self.selected_filter is not None and self.selected_filter.tag is not None:
                self.selected_filter = Filter.all()

            deleted = result.rowcount or 0
            self.notify("batch_deleted", [model])
            return deleted

    def delete_all(self):
        with self._lock:
            self.batch_delete(Tag)
            self.batch_delete(Issue)
            self.save()

    # ============ EDITING ============

    def update_issue(self, issue: Issue, **fields) -> Issue:
        with self._lock:
            for name, value in fields.items():
                if name not in EDITABLE_ISSUE_FIELDS:
                    raise ValueError(f"field not editable: {name}")
                setattr(issue, name, value)
            self.queue_save()
            return issue

    def toggle_completed(self, issue: Issue) -> Issue:
        with self._lock:
            issue.is_completed = not issue.is_completed
            self.save()
            return issue

    def add_tag(self, issue: Issue, tag: Tag):
        with self._lock:
            issue.tags.add(tag)
            self.queue_save()

    def remove_tag(self, issue: Issue, tag: Tag):
        with self._lock:
            issue.tags.discard(tag)
            self.queue_save()

    def rename_tag(self, tag: Tag, name: str) -> Tag:
        with self._lock:
            tag.name = name
            self.save()
            return tag

    # ============ READ ============

    def get_issue(self, issue_id) -> Optional[Issue]:
        return self._get(Issue, issue_id)

    def get_tag(self, tag_id) -> Optional[Tag]:
        return self._get(Tag, tag_id)

    def _get(self, model, entity_id):
        if not isinstance(entity_id, uuid.UUID):
            try:
                entity_id = uuid.UUID(str(entity_id))
            except ValueError:
                return None
        with self._lock:
            try:
                return self.session.get(model, entity_id)
            except SQLAlchemyError as e:
                logger.warning(f"Lookup of {model.__tablename__} {entity_id} failed: {e}")
                return None

    def all_tags(self) -> List[Tag]:
        with self._lock:
            try:
                return sorted(self.session.execute(select(Tag)).scalars().all())
            except SQLAlchemyError as e:
                logger.warning(f"Tag query failed: {e}")
                return []

    def tag_filters(self) -> List[Filter]:
        return [Filter.for_tag(tag) for tag in self.all_tags()]

    def missing_tags(self, issue: Issue) -> List[Tag]:
        """Tags pas encore associés à l'issue (menu "ajouter un tag")"""
        all_tags = set(self.all_tags())
        return sorted(all_tags.symmetric_difference(issue.tags))

    def count(self, model, *criteria) -> int:
        """count(*) sans matérialiser les lignes ; 0 en cas d'échec"""
        stmt = select(func.count()).select_from(model)
        if criteria:
            stmt = stmt.where(*criteria)
        with self._lock:
            try:
                return self.session.execute(stmt).scalar_one()
            except SQLAlchemyError as e:
                logger.warning(f"Count on {model.__tablename__} failed: {e}")
                return 0

    def query(
        self,
        filter: Optional[Filter] = None,
        search_text: str = "",
        tokens=(),
        priority: int = -1,
        status: Status = Status.ALL,
        sort_type: SortType = SortType.CREATION_DATE,
        newest_first: bool = True,
        filter_enabled: bool = True,
        strict: bool = False,
    ) -> List[Issue]:
        options = IssueQuery(
            filter=filter or self.selected_filter or Filter.all(),
            search_text=search_text,
            tokens=list(tokens),
            filter_enabled=filter_enabled,
            priority=priority,
            status=Status(status),
            sort_type=SortType(sort_type),
            newest_first=newest_first,
        )
        return self.run_query(options, strict=strict)

    def issues_for_selected_filter(self, **options) -> List[Issue]:
        """Liste principale : le filtre de la sidebar + les options de recherche"""
        options.pop("filter", None)
        return self.query(filter=self.selected_filter or Filter.all(), **options)

    def run_query(self, options: IssueQuery, strict: bool = False) -> List[Issue]:
        with self._lock:
            return predicate_service.issues_for_filter(self.session, options, strict=strict)

    def suggested_search_tokens(self, search_text: str) -> List[Tag]:
        with self._lock:
            return predicate_service.suggested_search_tokens(self.session, search_text)

    def top_issues(self, count: int) -> List[Issue]:
        with self._lock:
            return predicate_service.top_issues(self.session, count)

    # ============ PREMIUM & AWARDS ============

    @property
    def full_version_unlocked(self) -> bool:
        return self.settings_store.get_bool(PREMIUM_KEY)

    @full_version_unlocked.setter
    def full_version_unlocked(self, value: bool):
        self.settings_store.set(PREMIUM_KEY, bool(value))

    def has_earned(self, award) -> bool:
        from feedback.services.award_service import has_earned
        return has_earned(award, self)
