"""
Router du canal de synchronisation et des achats premium
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from feedback.core.database import get_entitlements, get_reconciler
from feedback.schemas.sync import MergeResponse, RemoteChangeRequest, TransactionRequest, TransactionResponse
from feedback.services.sync_service import EntitlementMonitor, EntitlementTransaction, SyncReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/remote-change", response_model=MergeResponse)
def remote_change(request: RemoteChangeRequest, reconciler: SyncReconciler = Depends(get_reconciler)):
    """Notification "la base a changé ailleurs" : fusion immédiate"""
    result = reconciler.remote_store_changed(request.issue_ids, request.tag_ids)
    return MergeResponse(
        merged=len(result.merged),
        conflicts=[obj.id for obj in result.conflicts],
        removed=[obj.id for obj in result.removed],
    )


@router.post("/transactions", response_model=TransactionResponse)
async def transaction(request: TransactionRequest, monitor: EntitlementMonitor = Depends(get_entitlements)):
    if request.product_id != monitor.product_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown product")

    entitlement = EntitlementTransaction(
        transaction_id=request.transaction_id,
        product_id=request.product_id,
        signed=request.signed,
        revocation_date=request.revocation_date,
    )
    await monitor.finalize(entitlement)

    return TransactionResponse(
        transaction_id=entitlement.transaction_id,
        state=entitlement.state.value,
        full_version_unlocked=monitor.store.full_version_unlocked,
    )
