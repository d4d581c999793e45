"""
Tests de la synchronisation (fusion champ par champ) et des achats premium
"""

import asyncio
from datetime import datetime

import pytest
from sqlalchemy import delete, func, insert, select, update

from feedback.core.database import make_engine
from feedback.core.exceptions import TransactionError
from feedback.models.filter import Filter
from feedback.models.issue import Issue, issue_tags
from feedback.models.tag import Tag
from feedback.services.sync_service import (
    EntitlementTransaction,
    QueueTransport,
    RemoteChange,
    SyncState,
    TransactionState,
)

PRODUCT_ID = "test.premiumUnlock"


@pytest.fixture
def remote(db_url):
    """Un autre appareil qui écrit dans la même base"""
    engine = make_engine(db_url)
    yield engine
    engine.dispose()


@pytest.fixture
def slow_store(store):
    # la sauvegarde différée ne doit pas partir pendant le test
    store.save_delay = 60
    return store


def remote_update(engine, model, entity_id, **values):
    table = model.__table__
    with engine.begin() as conn:
        conn.execute(update(table).where(table.c.id == entity_id).values(**values))


def remote_delete(engine, model, entity_id):
    table = model.__table__
    with engine.begin() as conn:
        conn.execute(delete(table).where(table.c.id == entity_id))


def join_rows(engine):
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(issue_tags)).scalar_one()


# ============ TESTS FUSION ============

def test_remote_value_applied(slow_store, reconciler, remote):
    issue = slow_store.create_issue()
    remote_update(remote, Issue, issue.id, title="From my phone")

    result = reconciler.remote_store_changed(issue_ids=[issue.id])

    assert issue.title == "From my phone"
    assert result.merged == [issue]
    assert reconciler.state_of(issue) == SyncState.SYNCED
    # la valeur distante n'est pas une modification locale
    assert not slow_store.has_changes


def test_local_edit_wins(slow_store, reconciler, remote):
    issue = slow_store.create_issue()
    slow_store.update_issue(issue, title="Local title")
    remote_update(remote, Issue, issue.id, title="Remote title", content="Remote content")

    result = reconciler.remote_store_changed(issue_ids=[issue.id])

    assert issue.title == "Local title"
    assert issue.content == "Remote content"
    assert result.conflicts == [issue]
    assert reconciler.state_of(issue) == SyncState.REMOTE_CONFLICT

    slow_store.save()
    assert reconciler.state_of(issue) == SyncState.SYNCED
    with remote.connect() as conn:
        row = conn.execute(select(Issue.__table__).where(Issue.__table__.c.id == issue.id)).mappings().one()
    assert row["title"] == "Local title"
    assert row["content"] == "Remote content"


def test_remote_tag_link(slow_store, reconciler, remote):
    issue = slow_store.create_issue()
    tag = slow_store.create_tag()
    with remote.begin() as conn:
        conn.execute(insert(issue_tags).values(issue_id=issue.id, tag_id=tag.id))

    reconciler.remote_store_changed(issue_ids=[issue.id])

    assert tag in issue.tags
    assert issue in tag.issues
    assert not slow_store.has_changes


def test_remote_tag_rename(slow_store, reconciler, remote):
    tag = slow_store.create_tag()
    remote_update(remote, Tag, tag.id, name="Renamed elsewhere")

    reconciler.remote_store_changed(tag_ids=[tag.id])

    assert tag.name == "Renamed elsewhere"


def test_remote_deletion_wins(slow_store, reconciler, remote):
    issue = slow_store.create_issue()
    issue_id = issue.id
    slow_store.update_issue(issue, title="Edited here")
    remote_delete(remote, Issue, issue_id)

    result = reconciler.remote_store_changed()

    assert result.removed == [issue]
    assert slow_store.selected_issue is None
    assert slow_store.get_issue(issue_id) is None
    assert slow_store.count(Issue) == 0


def test_remote_tag_deletion_resets_selected_filter(slow_store, reconciler, remote):
    """Le tag sélectionné supprimé ailleurs : la sidebar revient sur "All Issues" """
    tag = slow_store.create_tag()
    slow_store.selected_filter = Filter.for_tag(tag)
    remote_delete(remote, Tag, tag.id)

    result = reconciler.remote_store_changed()

    assert result.removed == [tag]
    assert slow_store.selected_filter == Filter.all()

    issue = slow_store.create_issue()
    assert issue.tags == set()
    assert join_rows(remote) == 0


def test_remote_tag_deletion_drops_local_link(slow_store, reconciler, remote):
    """Un lien ajouté localement vers un tag supprimé ailleurs n'est jamais écrit"""
    tag = slow_store.create_tag()
    issue = slow_store.create_issue()
    slow_store.add_tag(issue, tag)
    remote_delete(remote, Tag, tag.id)

    reconciler.remote_store_changed(tag_ids=[tag.id])

    assert tag not in issue.tags
    slow_store.save()
    assert join_rows(remote) == 0


def test_remote_tag_deletion_keeps_other_local_links(slow_store, reconciler, remote):
    doomed = slow_store.create_tag()
    kept = slow_store.create_tag()
    issue = slow_store.create_issue()
    slow_store.add_tag(issue, doomed)
    slow_store.save()
    slow_store.add_tag(issue, kept)
    remote_delete(remote, Tag, doomed.id)

    reconciler.remote_store_changed(tag_ids=[doomed.id])

    assert issue.tags == {kept}
    slow_store.save()
    with remote.connect() as conn:
        rows = conn.execute(select(issue_tags)).all()
    assert rows == [(issue.id, kept.id)]


def test_local_only_not_touched(store, reconciler):
    issue = Issue(title="draft")
    store.session.add(issue)
    assert reconciler.state_of(issue) == SyncState.LOCAL_ONLY

    result = reconciler.remote_store_changed()
    assert result.merged == []
    store.save()
    assert reconciler.state_of(issue) == SyncState.SYNCED


def test_single_merged_notification(slow_store, reconciler, remote):
    first = slow_store.create_issue()
    second = slow_store.create_issue()
    remote_update(remote, Issue, first.id, title="one")
    remote_update(remote, Issue, second.id, title="two")

    seen = []
    slow_store.subscribe(lambda change: seen.append(change))
    reconciler.remote_store_changed()

    merged = [change for change in seen if change.kind == "merged"]
    assert len(merged) == 1
    assert set(merged[0].objects) == {first, second}


def test_listen_on_transport(slow_store, reconciler, remote):
    issue = slow_store.create_issue()
    remote_update(remote, Issue, issue.id, content="synced")

    async def scenario():
        transport = QueueTransport()
        await transport.publish(RemoteChange(issue_ids=[issue.id]))
        await transport.close()
        await reconciler.listen(transport.changes())

    asyncio.run(scenario())
    assert issue.content == "synced"


# ============ TESTS ACHATS ============

def test_entitlement_finalized(store, entitlements):
    acknowledged = []
    transaction = EntitlementTransaction("t1", PRODUCT_ID, acknowledge=lambda: acknowledged.append("t1"))

    assert asyncio.run(entitlements.finalize(transaction))

    assert transaction.state == TransactionState.FINALIZED
    assert store.full_version_unlocked
    assert acknowledged == ["t1"]


def test_entitlement_revoked(store, entitlements):
    store.full_version_unlocked = True
    transaction = EntitlementTransaction("t2", PRODUCT_ID, revocation_date=datetime(2025, 1, 1))

    asyncio.run(entitlements.finalize(transaction))

    assert transaction.state == TransactionState.FINALIZED
    assert not store.full_version_unlocked


def test_unverified_transaction_not_granted(store, entitlements):
    transaction = EntitlementTransaction("t3", PRODUCT_ID, signed=False)

    assert not asyncio.run(entitlements.finalize(transaction))
    assert transaction.state == TransactionState.UNVERIFIED
    assert not store.full_version_unlocked


def test_other_product_ignored(store, entitlements):
    transaction = EntitlementTransaction("t4", "some.other.product")
    assert not asyncio.run(entitlements.finalize(transaction))
    assert transaction.state == TransactionState.UNVERIFIED


def test_finish_requires_verification():
    transaction = EntitlementTransaction("t5", PRODUCT_ID)
    with pytest.raises(TransactionError):
        asyncio.run(transaction.finish())


def test_monitor_current_then_updates(store, entitlements):
    async def updates():
        yield EntitlementTransaction("late", PRODUCT_ID, revocation_date=datetime(2025, 1, 1))

    current = [EntitlementTransaction("early", PRODUCT_ID)]
    finalized = asyncio.run(entitlements.monitor(current, updates()))

    assert [t.transaction_id for t in finalized] == ["early", "late"]
    # la révocation arrivée en dernier l'emporte
    assert not store.full_version_unlocked
