"""
Router des awards (débloqués ou non)
"""

from fastapi import APIRouter, Depends
from typing import List

from feedback.core.database import get_awards, get_store
from feedback.schemas.award import AwardResponse
from feedback.services.award_service import has_earned
from feedback.services.store import DataStore

router = APIRouter(prefix="/awards", tags=["awards"])


@router.get("", response_model=List[AwardResponse])
def list_awards(awards=Depends(get_awards), store: DataStore = Depends(get_store)):
    # réévalué à chaque appel, pas de cache
    return [
        AwardResponse(id=award.id, earned=has_earned(award, store), **award.model_dump())
        for award in awards
    ]
