"""
Admin Module - Store Settings Routes
========================================
Dashboard stats, cart config (shipping fee / free-shipping threshold) and the
order reconciliation queue.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_admin
from modules.admin.dashboard_service import dashboard_service
from modules.checkout.service import CheckoutOrchestrator, get_checkout_orchestrator
from modules.order.reconciliation import reconciliation_service
from modules.order.schemas import reconciliation_to_dict
from modules.pricing.service import cart_config_service

router = APIRouter(prefix="/admin", tags=["admin-settings"])


class ConfigValue(BaseModel):
    value: str


def _config_to_dict(row) -> dict:
    return {
        "name": row.name,
        "label": row.label,
        "value": row.value,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


@router.get("/dashboard")
async def dashboard(db: Session = Depends(get_db), admin=Depends(require_admin)):
    return dashboard_service.get_overview_stats(db)


# ==========================================
# Cart Config
# ==========================================

@router.get("/cart-config")
async def list_cart_config(db: Session = Depends(get_db), admin=Depends(require_admin)):
    return [_config_to_dict(row) for row in cart_config_service.get_all(db)]


@router.put("/cart-config/{name}")
async def set_cart_config(
    name: str,
    body: ConfigValue,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    row = cart_config_service.set_value(db, name, body.value)
    db.commit()
    return _config_to_dict(row)


# ==========================================
# Reconciliation Queue
# ==========================================

@router.get("/reconciliations")
async def list_reconciliations(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    return [reconciliation_to_dict(r) for r in reconciliation_service.list_all(db, status=status)]


@router.post("/reconciliations/retry")
async def retry_reconciliations(
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    return orchestrator.recover_pending(db)
