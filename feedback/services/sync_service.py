"""
Synchronisation entre appareils

Le transport (hors scope) écrit les changements distants dans la base puis
signale "quelque chose a changé". Le reconciler relit alors les lignes
concernées et les fusionne dans le working set du store, champ par champ :
- champ édité localement et pas encore commit -> la valeur locale gagne
  (le record passe en REMOTE_CONFLICT jusqu'au prochain save)
- sinon -> la valeur distante devient la valeur "commitée" de l'objet
Une seule notification "merged" par fusion.

Les achats premium suivent une machine à états plus simple :
UNVERIFIED -> VERIFIED -> FINALIZED.
"""

import asyncio
import inspect as pyinspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Callable, Iterable, Optional

from sqlalchemy import inspect, select
from sqlalchemy.orm.attributes import set_committed_value

from feedback.core.config import settings
from feedback.core.exceptions import TransactionError
from feedback.models.filter import Filter
from feedback.models.issue import Issue, issue_tags
from feedback.models.tag import Tag

logger = logging.getLogger(__name__)

ISSUE_FIELDS = (
    "title",
    "content",
    "creation_date",
    "modification_date",
    "priority",
    "is_completed",
    "reminder_enabled",
    "reminder_time",
)
TAG_FIELDS = ("name",)


class SyncState(str, Enum):
    LOCAL_ONLY = "local_only"
    SYNCED = "synced"
    REMOTE_CONFLICT = "remote_conflict"


@dataclass
class RemoteChange:
    """Ids touchés côté distant ; None = on ne sait pas, tout refusionner"""
    issue_ids: Optional[list] = None
    tag_ids: Optional[list] = None


@dataclass
class MergeResult:
    merged: list = field(default_factory=list)
    conflicts: list = field(default_factory=list)
    removed: list = field(default_factory=list)


class SyncTransport(ABC):
    @abstractmethod
    def changes(self) -> AsyncIterator[RemoteChange]:
        pass


class QueueTransport(SyncTransport):
    """Transport en mémoire : quelqu'un publie, le reconciler consomme"""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    async def publish(self, change: RemoteChange):
        await self._queue.put(change)

    async def close(self):
        await self._queue.put(None)

    async def changes(self) -> AsyncIterator[RemoteChange]:
        while True:
            change = await self._queue.get()
            if change is None:
                return
            yield change


class SyncReconciler:

    def __init__(self, store):
        self.store = store
        self._conflicts: set = set()
        # un save réussi règle les conflits : la valeur locale est désormais celle de la base
        store.subscribe(self._on_store_change)

    def _on_store_change(self, change):
        if change.kind == "saved":
            self._conflicts.clear()

    def state_of(self, entity) -> SyncState:
        if self.store.is_local_only(entity):
            return SyncState.LOCAL_ONLY
        if entity.id in self._conflicts:
            return SyncState.REMOTE_CONFLICT
        return SyncState.SYNCED

    def remote_store_changed(self, issue_ids: Optional[Iterable] = None, tag_ids: Optional[Iterable] = None) -> MergeResult:
        store = self.store
        session = store.session
        result = MergeResult()

        with store.lock, session.no_autoflush:
            issues = self._loaded(Issue, issue_ids)
            tags = self._loaded(Tag, tag_ids)

            issue_rows = self._rows(Issue, [issue.id for issue in issues])
            tag_rows = self._rows(Tag, [tag.id for tag in tags])
            links = self._links([issue.id for issue in issues])

            for tag in tags:
                row = tag_rows.get(tag.id)
                if row is None:
                    self._forget(tag, "issues", "tags", result)
                    continue
                self._merge_columns(tag, row, TAG_FIELDS, result)

            for issue in issues:
                row = issue_rows.get(issue.id)
                if row is None:
                    self._forget(issue, "tags", "issues", result)
                    continue
                self._merge_columns(issue, row, ISSUE_FIELDS, result)
                self._merge_tags(issue, links.get(issue.id, set()), result)

            store.notify("merged", result.merged)

        logger.info(
            f"Remote merge: {len(result.merged)} merged, "
            f"{len(result.conflicts)} kept local, {len(result.removed)} removed"
        )
        return result

    async def listen(self, events: AsyncIterator[RemoteChange]):
        """Boucle du canal de sync ; une erreur n'arrête pas la boucle"""
        async for change in events:
            try:
                await asyncio.to_thread(self.remote_store_changed, change.issue_ids, change.tag_ids)
            except Exception:
                logger.exception("Remote merge failed, will retry on next change")

    # ============ HELPERS ============

    def _loaded(self, model, ids) -> list:
        # seuls les objets déjà en mémoire ont besoin d'être fusionnés
        wanted = None if ids is None else {str(i) for i in ids}
        objects = []
        for obj in list(self.store.session.identity_map.values()):
            if not isinstance(obj, model) or self.store.is_local_only(obj):
                continue
            if wanted is None or str(obj.id) in wanted:
                objects.append(obj)
        return objects

    def _rows(self, model, ids) -> dict:
        if not ids:
            return {}
        table = model.__table__
        rows = self.store.session.execute(select(table).where(table.c.id.in_(ids))).mappings().all()
        return {row["id"]: row for row in rows}

    def _links(self, issue_ids) -> dict:
        if not issue_ids:
            return {}
        rows = self.store.session.execute(
            select(issue_tags).where(issue_tags.c.issue_id.in_(issue_ids))
        ).all()
        links = {}
        for issue_id, tag_id in rows:
            links.setdefault(issue_id, set()).add(tag_id)
        return links

    def _merge_columns(self, obj, row, fields, result: MergeResult):
        local = self.store.local_edits(obj)
        changed = False
        conflict = False
        for name in fields:
            remote_value = row[name]
            if name in local:
                if remote_value != getattr(obj, name):
                    conflict = True
                continue
            if remote_value != getattr(obj, name):
                set_committed_value(obj, name, remote_value)
                changed = True
        self._record(obj, changed, conflict, result)

    def _merge_tags(self, issue: Issue, remote_tag_ids: set, result: MergeResult):
        local_ids = {tag.id for tag in issue.tags}
        if remote_tag_ids == local_ids:
            return
        if "tags" in self.store.local_edits(issue):
            self._record(issue, False, True, result)
            return

        session = self.store.session
        remote_tags = [session.get(Tag, tag_id) for tag_id in remote_tag_ids]
        remote_tags = [tag for tag in remote_tags if tag is not None]
        touched = set(issue.tags) | set(remote_tags)
        set_committed_value(issue, "tags", remote_tags)

        # côté tag, la collection est relue au prochain accès
        for tag in touched:
            if "issues" not in self.store.local_edits(tag):
                session.expire(tag, ["issues"])
        self._record(issue, True, False, result)

    def _forget(self, obj, attr: str, inverse: str, result: MergeResult):
        """Supprimé ailleurs : la suppression distante l'emporte, liens locaux compris"""
        for other in self._holders(obj, attr, inverse):
            self._drop_link(other, inverse, obj)
        self.store.session.expunge(obj)
        self._conflicts.discard(obj.id)

        store = self.store
        if store.selected_issue is obj:
            store.selected_issue = None
        if store.selected_filter is not None and store.selected_filter.tag is obj:
            store.selected_filter = Filter.all()
        result.removed.append(obj)
        result.merged.append(obj)

    def _holders(self, obj, attr: str, inverse: str) -> list:
        # la collection de obj peut avoir été relue après la cascade distante :
        # on cherche aussi les objets en mémoire qui le référencent encore
        session = self.store.session
        model = inspect(obj).mapper.relationships[attr].mapper.class_
        holders = list(getattr(obj, attr))
        for other in list(session.identity_map.values()) + list(session.new):
            if not isinstance(other, model) or other in holders:
                continue
            if inverse not in inspect(other).unloaded and obj in getattr(other, inverse):
                holders.append(other)
        return holders

    def _drop_link(self, other, inverse: str, obj):
        # aucune ligne issue_tags ne doit plus pointer vers obj
        collection = getattr(other, inverse)
        history = inspect(other).attrs[inverse].history
        if obj in history.added:
            collection.discard(obj)
            return
        if obj not in history.unchanged and obj not in history.deleted:
            return

        # obj sort de l'état commité ; les autres éditions locales sont rejouées
        added = list(history.added)
        deleted = [o for o in history.deleted if o is not obj]
        committed = [o for o in history.unchanged if o is not obj] + deleted
        set_committed_value(other, inverse, committed)
        collection = getattr(other, inverse)
        for o in added:
            collection.add(o)
        for o in deleted:
            collection.discard(o)

    def _record(self, obj, changed: bool, conflict: bool, result: MergeResult):
        if conflict:
            self._conflicts.add(obj.id)
            if obj not in result.conflicts:
                result.conflicts.append(obj)
        if (changed or conflict) and obj not in result.merged:
            result.merged.append(obj)


# ============ ENTITLEMENTS ============

class TransactionState(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    FINALIZED = "finalized"


@dataclass
class EntitlementTransaction:
    transaction_id: str
    product_id: str
    signed: bool = True  # signature validée par le collaborateur d'achat
    revocation_date: Optional[datetime] = None
    acknowledge: Optional[Callable] = None  # "finish" : ne plus redélivrer
    state: TransactionState = TransactionState.UNVERIFIED

    def verify(self):
        if not self.signed:
            raise TransactionError(f"Transaction {self.transaction_id} failed verification")
        if self.state == TransactionState.UNVERIFIED:
            self.state = TransactionState.VERIFIED

    async def finish(self):
        if self.state != TransactionState.VERIFIED:
            raise TransactionError(f"Transaction {self.transaction_id} is {self.state.value}, cannot finish")
        if self.acknowledge is not None:
            ack = self.acknowledge()
            if pyinspect.isawaitable(ack):
                await ack
        self.state = TransactionState.FINALIZED


class EntitlementMonitor:

    def __init__(self, store, product_id: Optional[str] = None):
        self.store = store
        self.product_id = product_id or settings.PREMIUM_PRODUCT_ID

    async def monitor(self, current_entitlements, updates=None):
        """Droits actuels d'abord, puis les mises à jour au fil de l'eau"""
        finalized = []
        for source in (current_entitlements, updates):
            if source is None:
                continue
            async for transaction in _aiter(source):
                if await self.finalize(transaction):
                    finalized.append(transaction)
        return finalized

    async def finalize(self, transaction: EntitlementTransaction) -> bool:
        if transaction.product_id != self.product_id:
            return False
        try:
            transaction.verify()
            self.store.notify("entitlement", [transaction])
            self.store.full_version_unlocked = transaction.revocation_date is None
            await transaction.finish()
        except Exception as e:
            # pas de droit ce tour-ci, on réessaiera au prochain cycle
            logger.warning(f"Entitlement {transaction.transaction_id} not granted: {e}")
            return False
        return True


async def _aiter(source):
    if hasattr(source, "__aiter__"):
        async for item in source:
            yield item
    else:
        for item in source:
            yield item
