"""
Router des issues (liste filtrée, édition, tags)
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import List, Optional

from feedback.core.database import get_store
from feedback.core.exceptions import QueryError
from feedback.models.filter import Filter, SortType, Status
from feedback.schemas.issue import IssueResponse, IssueUpdate
from feedback.schemas.tag import TagResponse
from feedback.services.store import DataStore

router = APIRouter(prefix="/issues", tags=["issues"])


# ============ HELPERS ============

def get_issue_or_404(store: DataStore, issue_id: str):
    issue = store.get_issue(issue_id)
    if issue is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Issue not found")
    return issue


def resolve_filter(store: DataStore, name: Optional[str]) -> Filter:
    """"all", "recent" ou l'id d'un tag"""
    if name is None or name == "all":
        return Filter.all()
    if name == "recent":
        return Filter.recent()
    tag = store.get_tag(name)
    if tag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return Filter.for_tag(tag)


def to_response(store: DataStore, issue) -> IssueResponse:
    # lecture des relations sous le lock du store (le save différé tourne dans un autre thread)
    with store.lock:
        return IssueResponse.model_validate(issue)


# ============ ENDPOINTS ============

@router.get("", response_model=List[IssueResponse])
def list_issues(
    filter: Optional[str] = Query(None, description="all, recent ou id de tag"),
    search: str = "",
    tokens: List[str] = Query([]),
    priority: int = Query(-1, ge=-1, le=2),
    status_filter: Status = Query(Status.ALL, alias="status"),
    sort: SortType = SortType.CREATION_DATE,
    newest_first: bool = True,
    filter_enabled: bool = True,
    store: DataStore = Depends(get_store)
):
    """
    Liste des issues pour un filtre de la sidebar.

    Le texte "#nom" cherche le tag du même nom plutôt que le texte.
    """
    token_tags = []
    for token in tokens:
        tag = store.get_tag(token)
        if tag is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Tag {token} not found")
        token_tags.append(tag)

    try:
        issues = store.query(
            filter=resolve_filter(store, filter),
            search_text=search,
            tokens=token_tags,
            priority=priority,
            status=status_filter,
            sort_type=sort,
            newest_first=newest_first,
            filter_enabled=filter_enabled,
            strict=True,
        )
    except QueryError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.to_dict())

    return [to_response(store, issue) for issue in issues]


@router.post("", response_model=IssueResponse, status_code=status.HTTP_201_CREATED)
def create_issue(
    filter: Optional[str] = Query(None, description="rattache l'issue au tag sélectionné"),
    store: DataStore = Depends(get_store)
):
    with store.lock:
        store.selected_filter = resolve_filter(store, filter)
        issue = store.create_issue()
        return to_response(store, issue)


@router.get("/top", response_model=List[IssueResponse])
def top_issues(count: int = Query(5, ge=1, le=50), store: DataStore = Depends(get_store)):
    return [to_response(store, issue) for issue in store.top_issues(count)]


@router.get("/{issue_id}", response_model=IssueResponse)
def get_issue(issue_id: str, store: DataStore = Depends(get_store)):
    return to_response(store, get_issue_or_404(store, issue_id))


@router.put("/{issue_id}", response_model=IssueResponse)
def update_issue(issue_id: str, data: IssueUpdate, store: DataStore = Depends(get_store)):
    """Édition de champs : sauvegarde différée (debounce)"""
    issue = get_issue_or_404(store, issue_id)
    fields = data.model_dump(exclude_unset=True)
    store.update_issue(issue, **fields)
    return to_response(store, issue)


@router.post("/{issue_id}/toggle", response_model=IssueResponse)
def toggle_issue(issue_id: str, store: DataStore = Depends(get_store)):
    issue = get_issue_or_404(store, issue_id)
    store.toggle_completed(issue)
    return to_response(store, issue)


@router.delete("/{issue_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_issue(issue_id: str, store: DataStore = Depends(get_store)):
    store.delete(get_issue_or_404(store, issue_id))


@router.get("/{issue_id}/missing-tags", response_model=List[TagResponse])
def missing_tags(issue_id: str, store: DataStore = Depends(get_store)):
    issue = get_issue_or_404(store, issue_id)
    with store.lock:
        return [TagResponse.model_validate(tag) for tag in store.missing_tags(issue)]


@router.post("/{issue_id}/tags/{tag_id}", response_model=IssueResponse)
def add_tag(issue_id: str, tag_id: str, store: DataStore = Depends(get_store)):
    issue = get_issue_or_404(store, issue_id)
    tag = store.get_tag(tag_id)
    if tag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    store.add_tag(issue, tag)
    return to_response(store, issue)


@router.delete("/{issue_id}/tags/{tag_id}", response_model=IssueResponse)
def remove_tag(issue_id: str, tag_id: str, store: DataStore = Depends(get_store)):
    issue = get_issue_or_404(store, issue_id)
    tag = store.get_tag(tag_id)
    if tag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    store.remove_tag(issue, tag)
    return to_response(store, issue)
