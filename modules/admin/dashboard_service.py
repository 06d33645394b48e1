"""
Admin Dashboard Service
=========================
Aggregated statistics for the admin dashboard.
"""

from datetime import timedelta
from typing import Dict, Any

from sqlalchemy.orm import Session
from sqlalchemy import func as sa_func

from modules.order.models import Order, OrderStatus, FulfillmentStatus, OrderReconciliation, ReconciliationStatus
from modules.catalog.models import Product
from modules.checkout.models import CheckoutAttempt
from modules.checkout.states import CheckoutState
from common.helpers import now_utc


class DashboardService:

    def get_overview_stats(self, db: Session) -> Dict[str, Any]:
        """Key business metrics."""
        now = now_utc()
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_ago = today_start - timedelta(days=30)

        # Orders
        total_orders = db.query(Order).count()
        paid_orders = db.query(Order).filter(Order.status == OrderStatus.PAID.value).count()
        today_orders = db.query(Order).filter(Order.created_at >= today_start).count()

        # Revenue (from paid orders)
        total_revenue = (
            db.query(sa_func.coalesce(sa_func.sum(Order.total_amount), 0))
            .filter(Order.paid_at.isnot(None))
            .scalar()
        )
        month_revenue = (
            db.query(sa_func.coalesce(sa_func.sum(Order.total_amount), 0))
            .filter(Order.paid_at.isnot(None), Order.paid_at >= month_ago)
            .scalar()
        )

        # Fulfillment pipeline
        fulfillment = dict(
            db.query(Order.fulfillment_status, sa_func.count(Order.id))
            .group_by(Order.fulfillment_status)
            .all()
        )

        # Checkout health
        awaiting_payment = db.query(CheckoutAttempt).filter(
            CheckoutAttempt.state == CheckoutState.AWAITING_USER_PAYMENT.value,
        ).count()
        open_reconciliations = db.query(OrderReconciliation).filter(
            OrderReconciliation.status != ReconciliationStatus.RESOLVED.value,
        ).count()

        return {
            "orders": {
                "total": total_orders,
                "paid": paid_orders,
                "today": today_orders,
            },
            "revenue": {
                "total": str(total_revenue),
                "last_30_days": str(month_revenue),
            },
            "fulfillment": {s.value: fulfillment.get(s.value, 0) for s in FulfillmentStatus},
            "products": {
                "active": db.query(Product).filter(Product.is_active == True).count(),
                "total": db.query(Product).count(),
            },
            "checkout": {
                "awaiting_payment": awaiting_payment,
                "open_reconciliations": open_reconciliations,
            },
        }


dashboard_service = DashboardService()
