"""
Router des tags (sidebar)
"""

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from feedback.core.database import get_store
from feedback.core.exceptions import TagLimitReached
from feedback.schemas.tag import TagResponse, TagUpdate
from feedback.services.store import DataStore

router = APIRouter(prefix="/tags", tags=["tags"])


def get_tag_or_404(store: DataStore, tag_id: str):
    tag = store.get_tag(tag_id)
    if tag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return tag


@router.get("", response_model=List[TagResponse])
def list_tags(store: DataStore = Depends(get_store)):
    with store.lock:
        return [TagResponse.model_validate(tag) for tag in store.all_tags()]


@router.get("/suggestions", response_model=List[TagResponse])
def suggestions(search: str = "", store: DataStore = Depends(get_store)):
    """Tags proposés quand la recherche commence par "#" """
    with store.lock:
        return [TagResponse.model_validate(tag) for tag in store.suggested_search_tokens(search)]


@router.post("", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
def create_tag(store: DataStore = Depends(get_store)):
    with store.lock:
        tag = store.create_tag()
        if tag is None:
            error = TagLimitReached(store.free_tag_limit)
            raise HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=error.to_dict())
        return TagResponse.model_validate(tag)


@router.put("/{tag_id}", response_model=TagResponse)
def rename_tag(tag_id: str, data: TagUpdate, store: DataStore = Depends(get_store)):
    with store.lock:
        tag = store.rename_tag(get_tag_or_404(store, tag_id), data.name)
        return TagResponse.model_validate(tag)


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tag(tag_id: str, store: DataStore = Depends(get_store)):
    """Supprime le tag ; ses issues restent"""
    store.delete(get_tag_or_404(store, tag_id))
