# campus_delivery/services/report_service.py
import io
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional
import pytz
from .earnings_service import payment_bucket
from .order_service import utcnow
from .pricing import admin_fee, courier_share, round_money
from ..config import Config
from ..database.repositories import OrderRepository
from ..exceptions import InvalidInput
from ..models.order import Order, OrderFilter, OrderStatus
from ..models.payment import PaymentBucket

DATE_RANGES = ("week", "month", "quarter", "year")


class ReportService:
    """Admin statistics over delivery fees"""

    def __init__(self, orders: OrderRepository):
        self.orders = orders
        self.tz = pytz.timezone(Config.TIMEZONE)
        self.logger = logging.getLogger(__name__)

    def _local(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = pytz.utc.localize(value)
        return value.astimezone(self.tz)

    def range_start(self, date_range: str, now: Optional[datetime] = None) -> datetime:
        """Local midnight where a week/month/quarter/year range begins"""
        if date_range not in DATE_RANGES:
            raise InvalidInput(f"Unknown date range {date_range}")

        today = self._local(now or utcnow()).date()
        if date_range == "week":
            start = today - timedelta(days=7)
        elif date_range == "month":
            start = today.replace(day=1)
        elif date_range == "quarter":
            start = today.replace(month=(today.month - 1) // 3 * 3 + 1, day=1)
        else:
            start = today.replace(month=1, day=1)

        return self.tz.localize(datetime(start.year, start.month, start.day))

    async def get_monthly_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Completed orders created in the current calendar month"""
        local_now = self._local(now or utcnow())
        month_start = self.tz.localize(datetime(local_now.year, local_now.month, 1))

        orders = await self.orders.query(OrderFilter(
            statuses=[OrderStatus.COMPLETED],
            created_from=month_start
        ))
        orders = [
            o for o in orders
            if (self._local(o.created_at).year, self._local(o.created_at).month)
            == (local_now.year, local_now.month)
        ]

        delivery_total = sum((o.delivery_charge for o in orders), Decimal(0))
        return {
            "month": local_now.strftime("%Y-%m"),
            "order_count": len(orders),
            "total_delivery_charges": delivery_total,
            "total_food_price": sum((o.subtotal for o in orders), Decimal(0)),
            "admin_income": admin_fee(delivery_total),
        }

    async def get_payment_stats(self, date_range: str = "month",
                                now: Optional[datetime] = None) -> Dict[str, Any]:
        """Per-order fee split, daily series and per-driver totals for a range"""
        start = self.range_start(date_range, now)
        orders = await self.orders.query(OrderFilter(created_from=start))
        return self.build_payment_stats(orders, start)

    def build_payment_stats(self, orders: List[Order], start: datetime) -> Dict[str, Any]:
        payments = []
        daily: Dict[str, Dict[str, Any]] = {}
        drivers: Dict[str, Dict[str, Any]] = {}

        for order in sorted(orders, key=lambda o: o.created_at):
            if not order.delivery_charge or order.created_at < start:
                continue

            local_date = self._local(order.created_at)
            payment = {
                "order_id": order.order_id,
                "date": local_date,
                "amount": order.total,
                "delivery_fee": order.delivery_charge,
                "admin_fee": admin_fee(order.delivery_charge),
                "driver_earnings": courier_share(order.delivery_charge),
                "driver": order.delivery_person_contact or (
                    str(order.delivery_person_id) if order.delivery_person_id else ""
                ),
                "status": payment_bucket(order).value,
            }
            payments.append(payment)

            day = daily.setdefault(local_date.strftime("%Y-%m-%d"), {
                "date": local_date.strftime("%Y-%m-%d"),
                "total_amount": Decimal(0),
                "admin_fees": Decimal(0),
                "driver_earnings": Decimal(0),
                "payment_count": 0,
            })
            day["total_amount"] += payment["amount"]
            day["admin_fees"] += payment["admin_fee"]
            day["driver_earnings"] += payment["driver_earnings"]
            day["payment_count"] += 1

            if payment["driver"]:
                driver = drivers.setdefault(payment["driver"], {
                    "driver": payment["driver"],
                    "total_earnings": Decimal(0),
                    "payment_count": 0,
                    "paid_amount": Decimal(0),
                    "pending_amount": Decimal(0),
                })
                driver["total_earnings"] += payment["driver_earnings"]
                driver["payment_count"] += 1
                if payment["status"] == PaymentBucket.CONFIRMED.value:
                    driver["paid_amount"] += payment["driver_earnings"]
                else:
                    driver["pending_amount"] += payment["driver_earnings"]

        total_amount = sum((p["amount"] for p in payments), Decimal(0))
        return {
            "start": start,
            "total_payments": len(payments),
            "confirmed_payments": sum(1 for p in payments if p["status"] == PaymentBucket.CONFIRMED.value),
            "pending_payments": sum(1 for p in payments if p["status"] == PaymentBucket.LISTED.value),
            "unlisted_payments": sum(1 for p in payments if p["status"] == PaymentBucket.UNLISTED.value),
            "total_amount": total_amount,
            "total_admin_fees": sum((p["admin_fee"] for p in payments), Decimal(0)),
            "total_driver_earnings": sum((p["driver_earnings"] for p in payments), Decimal(0)),
            "average_payment": round_money(total_amount / len(payments)) if payments else Decimal(0),
            "payments": payments,
            "daily_stats": [daily[key] for key in sorted(daily)],
            "driver_summaries": sorted(
                drivers.values(), key=lambda d: d["total_earnings"], reverse=True
            ),
        }

    async def generate_excel_report(self, date_range: str = "month",
                                    now: Optional[datetime] = None) -> bytes:
        """Payment stats as an xlsx workbook"""
        import pandas as pd

        stats = await self.get_payment_stats(date_range, now)

        output = io.BytesIO()
        with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
            summary_data = {
                'Metric': [
                    'Total payments', 'Confirmed', 'Pending', 'Unlisted',
                    'Total amount', 'Admin fees', 'Driver earnings', 'Average payment'
                ],
                'Value': [
                    stats['total_payments'],
                    stats['confirmed_payments'],
                    stats['pending_payments'],
                    stats['unlisted_payments'],
                    float(stats['total_amount']),
                    float(stats['total_admin_fees']),
                    float(stats['total_driver_earnings']),
                    float(stats['average_payment'])
                ]
            }
            pd.DataFrame(summary_data).to_excel(writer, sheet_name='Summary', index=False)

            payments_df = pd.DataFrame([
                {
                    'Order': p['order_id'],
                    'Date': p['date'].strftime('%Y-%m-%d %H:%M'),
                    'Amount': float(p['amount']),
                    'Delivery fee': float(p['delivery_fee']),
                    'Admin fee': float(p['admin_fee']),
                    'Driver earnings': float(p['driver_earnings']),
                    'Driver': p['driver'],
                    'Status': p['status'],
                }
                for p in stats['payments']
            ])
            payments_df.to_excel(writer, sheet_name='Payments', index=False)

            daily_df = pd.DataFrame([
                {k: float(v) if isinstance(v, Decimal) else v for k, v in day.items()}
                for day in stats['daily_stats']
            ])
            daily_df.to_excel(writer, sheet_name='Daily', index=False)

            drivers_df = pd.DataFrame([
                {k: float(v) if isinstance(v, Decimal) else v for k, v in d.items()}
                for d in stats['driver_summaries']
            ])
            drivers_df.to_excel(writer, sheet_name='Drivers', index=False)

        self.logger.info(f"Excel report generated for {date_range}, {stats['total_payments']} payments")
        return output.getvalue()
