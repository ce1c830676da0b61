"""
Ledger de consumos de desayuno
SINGLE SOURCE OF TRUTH de "¿ya desayunó esta habitación hoy?"

Un registro por (property_id, room_number, consumption_date). Todas las
escrituras son condicionales a nivel de base (insert-if-absent,
update-if-pending) para que requests concurrentes sobre la misma clave no
dupliquen ni pisen consumos.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import config
from models.core import ConsumptionRecord, ConsumptionStatus, EventType, PaymentMethod
from services.audit import record_event
from utils.errors import DayClosed, NoPendingRecord, ValidationError
from utils.logging_utils import log_event
from utils.timezone import utcnow


@dataclass
class MarkResult:
    record: ConsumptionRecord
    already_consumed: bool = False


def _key_filter(property_id: str, room_number: str, day: date):
    return and_(
        ConsumptionRecord.property_id == property_id,
        ConsumptionRecord.room_number == room_number,
        ConsumptionRecord.consumption_date == day,
    )


def get(db: Session, property_id: str, room_number: str, day: date) -> Optional[ConsumptionRecord]:
    return db.execute(
        select(ConsumptionRecord)
        .where(_key_filter(property_id, room_number, day))
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _insert_if_absent(db: Session, values: dict) -> None:
    dialect = db.get_bind().dialect.name
    key = ["property_id", "room_number", "consumption_date"]

    if dialect == "postgresql":
        db.execute(pg_insert(ConsumptionRecord).values(**values).on_conflict_do_nothing(index_elements=key))
        return
    if dialect == "sqlite":
        db.execute(sqlite_insert(ConsumptionRecord).values(**values).on_conflict_do_nothing(index_elements=key))
        return

    # Otros motores: la unique constraint decide quién gana
    try:
        with db.begin_nested():
            db.add(ConsumptionRecord(**values))
    except IntegrityError:
        pass


def get_or_create(
    db: Session,
    property_id: str,
    room_number: str,
    day: date,
    guest_id: str,
) -> ConsumptionRecord:
    """Devuelve el registro del día o lo crea en estado pending (amount=0, sin método de pago)"""
    existing = get(db, property_id, room_number, day)
    if existing is not None:
        return existing

    now = utcnow()
    _insert_if_absent(db, {
        "property_id": property_id,
        "room_number": room_number,
        "consumption_date": day,
        "guest_id": guest_id,
        "status": ConsumptionStatus.PENDING,
        "amount": Decimal("0"),
        "ohip_covered": False,
        "pms_posted": False,
        "created_at": now,
        "updated_at": now,
    })
    db.commit()
    return get(db, property_id, room_number, day)


def mark_consumed(
    db: Session,
    property_id: str,
    room_number: str,
    day: date,
    consumed_by: str,
    payment_method: PaymentMethod,
    ohip_covered: bool,
    notes: Optional[str],
    amount: Decimal,
    guest_id: Optional[str] = None,
) -> MarkResult:
    """
    pending → consumed, una sola vez.

    Un retry sobre un registro ya consumido devuelve el registro original
    (already_consumed=True) en lugar de fallar.
    """
    record = get(db, property_id, room_number, day)
    if record is None:
        if guest_id is None:
            raise NoPendingRecord(
                f"No consumption record for room {room_number} on {day.isoformat()}",
                details={"property_id": property_id, "room_number": room_number, "date": day.isoformat()},
            )
        record = get_or_create(db, property_id, room_number, day, guest_id)

    now = utcnow()
    values = {
        "status": ConsumptionStatus.CONSUMED,
        "consumed_at": now,
        "consumed_by": consumed_by,
        "payment_method": payment_method,
        "ohip_covered": ohip_covered,
        "amount": amount,
        "notes": notes,
        "updated_at": now,
    }
    if guest_id is not None:
        values["guest_id"] = guest_id

    result = db.execute(
        update(ConsumptionRecord)
        .where(_key_filter(property_id, room_number, day))
        .where(ConsumptionRecord.status == ConsumptionStatus.PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        record_event(
            db, EventType.CONSUMED, consumed_by, property_id,
            room_number=room_number, day=day,
            payload={
                "guest_id": guest_id,
                "payment_method": payment_method.value,
                "ohip_covered": ohip_covered,
                "amount": str(amount),
            },
            descripcion=f"Desayuno consumido en habitación {room_number}",
        )
    db.commit()

    record = get(db, property_id, room_number, day)
    if result.rowcount == 1:
        log_event(
            "ledger", consumed_by, "Desayuno consumido",
            f"property_id={property_id}, room={room_number}, date={day.isoformat()}, metodo={payment_method.value}",
        )
        return MarkResult(record=record, already_consumed=False)

    if record.status == ConsumptionStatus.CONSUMED:
        return MarkResult(record=record, already_consumed=True)

    raise DayClosed(
        f"Breakfast for room {room_number} on {day.isoformat()} was closed as {record.status.value}",
        details={"status": record.status.value},
    )


def _by_id(db: Session, record_id: int) -> ConsumptionRecord:
    return db.execute(
        select(ConsumptionRecord)
        .where(ConsumptionRecord.id == record_id)
        .execution_options(populate_existing=True)
    ).scalar_one()


def claim_pms_posting(db: Session, record_id: int, lease_seconds: Optional[int] = None) -> bool:
    """
    Reserva el posteo de un consumo para que un solo proceso llame al PMS.

    El claim es un UPDATE condicional sobre pms_claimed_at: gana quien lo
    encuentra vacío (o vencido). Un claim vencido se puede volver a tomar
    para que un proceso caído a mitad del posteo no deje el cargo trabado.
    """
    lease = timedelta(seconds=config.PMS_POSTING_LEASE_SECONDS if lease_seconds is None else lease_seconds)
    now = utcnow()
    result = db.execute(
        update(ConsumptionRecord)
        .where(ConsumptionRecord.id == record_id)
        .where(ConsumptionRecord.status == ConsumptionStatus.CONSUMED)
        .where(ConsumptionRecord.pms_posted.is_(False))
        .where(or_(
            ConsumptionRecord.pms_claimed_at.is_(None),
            ConsumptionRecord.pms_claimed_at < now - lease,
        ))
        .values(pms_claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def release_pms_posting(
    db: Session,
    record_id: int,
    usuario: str = "system",
    error: Optional[str] = None,
) -> ConsumptionRecord:
    """Libera el claim tras un posteo fallido; el consumo queda pms_posted=false"""
    record = _by_id(db, record_id)
    db.execute(
        update(ConsumptionRecord)
        .where(ConsumptionRecord.id == record_id)
        .where(ConsumptionRecord.pms_posted.is_(False))
        .values(pms_claimed_at=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    record_event(
        db, EventType.PMS_POSTING_FAILED, usuario, record.property_id,
        room_number=record.room_number, day=record.consumption_date,
        payload={"record_id": record_id, "error": error},
        descripcion=f"Cargo no posteado para habitación {record.room_number}",
    )
    db.commit()
    return _by_id(db, record_id)


def record_pms_posting(
    db: Session,
    record_id: int,
    transaction_id: Optional[str],
    usuario: str = "system",
) -> ConsumptionRecord:
    result = db.execute(
        update(ConsumptionRecord)
        .where(ConsumptionRecord.id == record_id)
        .where(ConsumptionRecord.status == ConsumptionStatus.CONSUMED)
        .where(ConsumptionRecord.pms_posted.is_(False))
        .values(pms_posted=True, pms_transaction_id=transaction_id, pms_claimed_at=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        record = _by_id(db, record_id)
        record_event(
            db, EventType.PMS_POSTED, usuario, record.property_id,
            room_number=record.room_number, day=record.consumption_date,
            payload={"record_id": record_id, "transaction_id": transaction_id, "amount": str(record.amount)},
            descripcion=f"Cargo posteado al folio de habitación {record.room_number}",
        )
    db.commit()
    return _by_id(db, record_id)


def list_for_property(db: Session, property_id: str, start: date, end: date) -> List[ConsumptionRecord]:
    if start > end:
        raise ValidationError("start_date must be on or before end_date")
    if (end - start).days + 1 > config.HISTORY_MAX_DAYS:
        raise ValidationError(f"Date range cannot exceed {config.HISTORY_MAX_DAYS} days")

    return list(db.execute(
        select(ConsumptionRecord)
        .where(ConsumptionRecord.property_id == property_id)
        .where(ConsumptionRecord.consumption_date >= start)
        .where(ConsumptionRecord.consumption_date <= end)
        .order_by(ConsumptionRecord.consumption_date.asc(), ConsumptionRecord.room_number.asc())
    ).scalars())


def list_unposted(db: Session, property_id: str) -> List[ConsumptionRecord]:
    """Consumos con método que postea al PMS pero sin cargo confirmado"""
    postable = [m for m in PaymentMethod if m.posts_to_pms]
    return list(db.execute(
        select(ConsumptionRecord)
        .where(ConsumptionRecord.property_id == property_id)
        .where(ConsumptionRecord.status == ConsumptionStatus.CONSUMED)
        .where(ConsumptionRecord.payment_method.in_(postable))
        .where(ConsumptionRecord.pms_posted.is_(False))
        .order_by(ConsumptionRecord.consumption_date.asc(), ConsumptionRecord.room_number.asc())
    ).scalars())


def close_day(db: Session, property_id: str, day: date, usuario: str = "system") -> int:
    """Los pending que quedan del día pasan a no_show. Devuelve cuántos se cerraron."""
    result = db.execute(
        update(ConsumptionRecord)
        .where(ConsumptionRecord.property_id == property_id)
        .where(ConsumptionRecord.consumption_date == day)
        .where(ConsumptionRecord.status == ConsumptionStatus.PENDING)
        .values(status=ConsumptionStatus.NO_SHOW, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    record_event(
        db, EventType.DAY_CLOSED, usuario, property_id, day=day,
        payload={"no_show": result.rowcount},
        descripcion=f"Cierre de día {day.isoformat()}",
    )
    db.commit()
    log_event("ledger", usuario, "Cierre de día", f"property_id={property_id}, date={day.isoformat()}, no_show={result.rowcount}")
    return result.rowcount
