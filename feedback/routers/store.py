"""
Router des opérations globales du store (save, reset, données d'exemple)
"""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from feedback.core.database import get_store
from feedback.models.issue import Issue
from feedback.models.tag import Tag
from feedback.services.store import DataStore

router = APIRouter(prefix="/store", tags=["store"])


class SaveResponse(BaseModel):
    saved: bool
    save_count: int


class SampleDataResponse(BaseModel):
    tags: int
    issues: int


@router.post("/save", response_model=SaveResponse)
def save(store: DataStore = Depends(get_store)):
    """Écrit tout de suite (annule la sauvegarde différée)"""
    saved = store.save()
    return SaveResponse(saved=saved, save_count=store.save_count)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def delete_all(store: DataStore = Depends(get_store)):
    store.delete_all()


@router.post("/sample-data", response_model=SampleDataResponse, status_code=status.HTTP_201_CREATED)
def sample_data(tag_count: int = 5, issues_per_tag: int = 10, store: DataStore = Depends(get_store)):
    with store.lock:
        store.delete_all()
        store.create_sample_data(tag_count, issues_per_tag)
        return SampleDataResponse(tags=store.count(Tag), issues=store.count(Issue))
