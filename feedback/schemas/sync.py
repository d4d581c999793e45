from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from uuid import UUID


class RemoteChangeRequest(BaseModel):
    """Ids absents = tout refusionner"""

    issue_ids: Optional[List[UUID]] = None
    tag_ids: Optional[List[UUID]] = None


class MergeResponse(BaseModel):
    merged: int
    conflicts: List[UUID]
    removed: List[UUID]


class TransactionRequest(BaseModel):
    transaction_id: str
    product_id: str
    signed: bool = True
    revocation_date: Optional[datetime] = None


class TransactionResponse(BaseModel):
    transaction_id: str
    state: str
    full_version_unlocked: bool
