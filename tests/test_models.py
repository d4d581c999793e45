"""
Tests des entités (accesseurs, tri, filtres)
"""

from datetime import datetime

from feedback.models.filter import ALL_FILTER_ID, Filter
from feedback.models.issue import Issue, Priority
from feedback.models.tag import Tag


# ============ TESTS ISSUE ============

def test_issue_defaults():
    """Une issue vide a des valeurs sûres"""
    issue = Issue()
    assert issue.safe_title == ""
    assert issue.safe_content == ""
    assert issue.priority == Priority.MEDIUM
    assert issue.is_completed is False
    assert issue.reminder_enabled is False
    assert isinstance(issue.safe_creation_date, datetime)


def test_issue_safe_title_setter():
    issue = Issue()
    issue.safe_title = "Crash au démarrage"
    assert issue.title == "Crash au démarrage"


def test_issue_status_label():
    issue = Issue(title="A")
    assert issue.status_label == "Open"
    issue.is_completed = True
    assert issue.status_label == "Closed"


def test_issue_tag_list():
    """Noms triés sans tenir compte de la casse, "No tags" si vide"""
    issue = Issue(title="A")
    assert issue.tag_list == "No tags"

    issue.tags.add(Tag(name="ui"))
    issue.tags.add(Tag(name="Backend"))
    assert issue.tag_list == "Backend, ui"
    assert [tag.name for tag in issue.sorted_tags] == ["Backend", "ui"]


def test_issue_sorting():
    """Titre (casse ignorée) puis date de création"""
    older = Issue(title="same", creation_date=datetime(2024, 1, 1))
    newer = Issue(title="Same", creation_date=datetime(2024, 6, 1))
    first = Issue(title="alpha", creation_date=datetime(2025, 1, 1))

    assert sorted([newer, first, older]) == [first, older, newer]


def test_issue_sorting_is_idempotent():
    """Retrier une liste déjà triée ne change rien"""
    issues = [
        Issue(title=title, creation_date=datetime(2024, month, 1))
        for month, title in enumerate(["b", "A", "a", "Été", "", "c"], start=1)
    ]
    issues.append(Issue(creation_date=datetime(2024, 12, 1)))

    once = sorted(issues)
    assert sorted(once) == once
    assert [issue.safe_title for issue in once][:3] == ["", "", "A"]


# ============ TESTS TAG ============

def test_tag_active_issues():
    tag = Tag(name="bug")
    open_issue = Issue(title="open")
    closed_issue = Issue(title="closed", is_completed=True)
    tag.issues.update({open_issue, closed_issue})

    assert tag.active_issues == [open_issue]
    assert tag.active_issue_count == 1
    # relation inverse tenue à jour
    assert tag in open_issue.tags


def test_tag_sorting_with_same_name():
    """Deux tags du même nom restent ordonnés de façon stable"""
    a = Tag(name="dup")
    b = Tag(name="DUP")
    assert sorted([a, b]) == sorted([b, a])


# ============ TESTS FILTER ============

def test_filter_all_is_smart():
    flt = Filter.all()
    assert flt.id == ALL_FILTER_ID
    assert flt.is_smart
    assert flt.active_issue_count == 0


def test_filter_equality_by_id():
    assert Filter.all() == Filter.all()
    assert Filter.all() != Filter.recent()
    assert len({Filter.all(), Filter.all()}) == 1


def test_filter_recent_threshold():
    flt = Filter.recent(days=7)
    assert (datetime.utcnow() - flt.min_modification_date).days == 7


def test_filter_for_tag():
    tag = Tag(name="ui")
    tag.issues.add(Issue(title="x"))
    flt = Filter.for_tag(tag)
    assert flt.id == tag.id
    assert flt.name == "ui"
    assert not flt.is_smart
    assert flt.active_issue_count == 1
