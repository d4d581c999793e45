from fastapi import APIRouter, Depends

from feedback.core.database import get_store
from feedback.services.store import DataStore

router = APIRouter()

@router.get("/z")
def healthz(store: DataStore = Depends(get_store)):
    # Check si l'API est up, et s'il reste une sauvegarde différée en attente
    return {"status": "ok", "save_pending": store.save_pending}
