"""
Reportes y analytics de desayunos, leídos del ledger
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models.core import ConsumptionRecord, ConsumptionStatus, PaymentMethod, Property
from schemas.room_grid import ConsumptionTrends, DailyReport, DailyTrend
from services import ledger
from services.guest_cache import GuestSnapshot
from services.projector import reconcile_property


def _rate(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 2)


def daily_report(db: Session, prop: Property, day: date, snapshot: GuestSnapshot) -> DailyReport:
    """Resumen del día: ocupación (del snapshot PMS) + consumos (del ledger)"""
    reconciled = reconcile_property(db, prop, snapshot, day)
    total_rooms = len(reconciled.occupancies)
    occupied = sum(1 for occ in reconciled.occupancies if occ.has_guest)
    with_breakfast = sum(1 for occ in reconciled.occupancies if occ.has_breakfast)

    base = (
        select(func.count(ConsumptionRecord.id))
        .where(ConsumptionRecord.property_id == prop.property_id)
        .where(ConsumptionRecord.consumption_date == day)
    )
    consumed = db.execute(base.where(ConsumptionRecord.status == ConsumptionStatus.CONSUMED)).scalar() or 0
    no_shows = db.execute(base.where(ConsumptionRecord.status == ConsumptionStatus.NO_SHOW)).scalar() or 0
    ohip = db.execute(
        base.where(ConsumptionRecord.status == ConsumptionStatus.CONSUMED)
        .where(ConsumptionRecord.ohip_covered.is_(True))
    ).scalar() or 0
    unposted = db.execute(
        base.where(ConsumptionRecord.status == ConsumptionStatus.CONSUMED)
        .where(ConsumptionRecord.payment_method.in_([m for m in PaymentMethod if m.posts_to_pms]))
        .where(ConsumptionRecord.pms_posted.is_(False))
    ).scalar() or 0
    revenue = db.execute(
        select(func.coalesce(func.sum(ConsumptionRecord.amount), 0))
        .where(ConsumptionRecord.property_id == prop.property_id)
        .where(ConsumptionRecord.consumption_date == day)
        .where(ConsumptionRecord.status == ConsumptionStatus.CONSUMED)
    ).scalar()

    return DailyReport(
        property_id=prop.property_id,
        date=day,
        total_rooms=total_rooms,
        occupied_rooms=occupied,
        rooms_with_breakfast=with_breakfast,
        consumed_breakfasts=consumed,
        no_shows=no_shows,
        ohip_covered=ohip,
        pms_unposted=unposted,
        total_revenue=Decimal(str(revenue or 0)).quantize(Decimal("0.01")),
        consumption_rate=_rate(consumed, with_breakfast),
        occupancy_rate=_rate(occupied, total_rooms),
        warnings=list(reconciled.warnings),
    )


def consumption_trends(db: Session, property_id: str, start: date, end: date) -> ConsumptionTrends:
    """Serie diaria para la pantalla de analytics"""
    records = ledger.list_for_property(db, property_id, start, end)

    days: Dict[date, DailyTrend] = {}
    current = start
    while current <= end:
        days[current] = DailyTrend(date=current, payment_methods={})
        current += timedelta(days=1)

    for record in records:
        trend = days[record.consumption_date]
        if record.status == ConsumptionStatus.CONSUMED:
            trend.consumed += 1
            trend.revenue += Decimal(str(record.amount or 0))
            if record.payment_method is not None:
                key = record.payment_method.value
                trend.payment_methods[key] = trend.payment_methods.get(key, 0) + 1
        elif record.status == ConsumptionStatus.NO_SHOW:
            trend.no_show += 1
        else:
            trend.pending += 1

    series = list(days.values())
    total_consumed = sum(t.consumed for t in series)
    total_revenue = sum((t.revenue for t in series), Decimal("0"))
    return ConsumptionTrends(
        property_id=property_id,
        start_date=start,
        end_date=end,
        days=series,
        total_consumed=total_consumed,
        total_revenue=total_revenue.quantize(Decimal("0.01")),
        average_daily_consumed=round(total_consumed / len(series), 2) if series else 0.0,
    )
