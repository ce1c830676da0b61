"""
Consumption Command Handler

Valida y aplica "marcar desayuno consumido" contra el ledger. El consumo y el
cargo al PMS están desacoplados: si el posteo falla el consumo queda
registrado igual y se devuelve un warning PMS_POSTING_FAILED.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

import config
from models.core import ConsumptionRecord, PaymentMethod, Property, Room
from schemas.pms import ChargeRequest, PMSGuest
from schemas.room_grid import MarkConsumptionRequest, RoomBreakfastStatus, RetryPostingsResponse
from services import ledger
from services.guest_cache import GuestCache
from services.pms_adapter import PMSAdapter
from services.projector import project
from services.reconciler import reconcile
from utils.dependencies import StaffContext
from utils.errors import NoEligibleGuest, NotFound, PmsPostingFailed, ValidationError
from utils.logging_utils import log_event, log_warning
from utils.timezone import get_operational_date


@dataclass
class MarkConsumptionResult:
    room: RoomBreakfastStatus
    consumption: ConsumptionRecord
    already_consumed: bool = False
    warnings: List[Dict[str, Any]] = field(default_factory=list)


def breakfast_amount(prop: Property, payment_method: PaymentMethod) -> Decimal:
    """Política de precio: comp no se cobra; el resto usa el precio de la propiedad"""
    if payment_method == PaymentMethod.COMP:
        return Decimal("0.00")
    price = prop.breakfast_price if prop.breakfast_price is not None else config.BREAKFAST_DEFAULT_PRICE
    return Decimal(str(price)).quantize(Decimal("0.01"))


def _load_room(db: Session, property_id: str, room_number: str) -> Room:
    room = db.execute(
        select(Room).where(Room.property_id == property_id, Room.room_number == room_number)
    ).scalar_one_or_none()
    if room is None:
        raise NotFound(f"Room {room_number} not found in property {property_id}")
    return room


def _charge_for(record: ConsumptionRecord, guest: Optional[PMSGuest]) -> ChargeRequest:
    return ChargeRequest(
        guest_id=record.guest_id,
        reservation_id=guest.reservation_id if guest else "",
        room_number=record.room_number,
        property_id=record.property_id,
        charge_code=config.BREAKFAST_CHARGE_CODE,
        department_code=config.BREAKFAST_DEPARTMENT_CODE,
        amount=record.amount,
        description=(
            "Breakfast (OHIP)" if record.payment_method == PaymentMethod.OHIP else "Breakfast"
        ),
        transaction_date=record.consumption_date,
        reference=f"BKF-{record.property_id}-{record.room_number}-{record.consumption_date.isoformat()}",
    )


def post_to_pms(
    db: Session,
    adapter: PMSAdapter,
    record: ConsumptionRecord,
    guest: Optional[PMSGuest],
    usuario: str,
) -> Optional[ConsumptionRecord]:
    """
    Postea el cargo de un consumo al folio.

    Devuelve None si otro proceso tiene el posteo reclamado. Si el PMS
    falla se libera el claim y se relanza PmsPostingFailed; el consumo no
    cambia de estado.
    """
    if not ledger.claim_pms_posting(db, record.id):
        return None
    try:
        response = adapter.post_charge(_charge_for(record, guest))
    except PmsPostingFailed as e:
        ledger.release_pms_posting(db, record.id, usuario=usuario, error=e.message)
        raise
    record = ledger.record_pms_posting(db, record.id, response.transaction_id, usuario=usuario)
    log_event(
        "pms_posting", usuario, "Cargo posteado",
        f"record_id={record.id}, room={record.room_number}, txn={response.transaction_id}",
    )
    return record


def mark_breakfast_consumed(
    db: Session,
    request: MarkConsumptionRequest,
    staff: StaffContext,
    adapter: PMSAdapter,
    cache: GuestCache,
) -> MarkConsumptionResult:
    prop = db.get(Property, request.property_id)
    if prop is None:
        raise NotFound(f"Property {request.property_id} not found")
    room = _load_room(db, prop.property_id, request.room_number)

    today = get_operational_date(prop.timezone)
    day: date = request.consumption_date or today
    if day > today:
        raise ValidationError(
            "Cannot mark breakfast for a future date",
            details={"consumption_date": day.isoformat(), "today": today.isoformat()},
        )

    snapshot = cache.get(prop.property_id)
    occupancy = reconcile([room], snapshot.guests, day).for_room(room.room_number)
    guest = occupancy.guest if occupancy else None
    if guest is None or not guest.breakfast_package:
        raise NoEligibleGuest(
            f"No active guest with a breakfast package in room {room.room_number} on {day.isoformat()}",
            details={"property_id": prop.property_id, "room_number": room.room_number},
        )

    payment_method = request.payment_method
    if payment_method == PaymentMethod.OHIP and not guest.ohip_number:
        raise ValidationError(f"Guest in room {room.room_number} has no OHIP number on file")

    marked = ledger.mark_consumed(
        db,
        prop.property_id,
        room.room_number,
        day,
        consumed_by=staff.staff_id,
        payment_method=payment_method,
        ohip_covered=payment_method == PaymentMethod.OHIP,
        notes=request.notes,
        amount=breakfast_amount(prop, payment_method),
        guest_id=guest.pms_guest_id,
    )
    record = marked.record
    warnings: List[Dict[str, Any]] = []

    if not marked.already_consumed and record.payment_method is not None and record.payment_method.posts_to_pms:
        try:
            posted = post_to_pms(db, adapter, record, guest, staff.staff_id)
            if posted is not None:
                record = posted
        except PmsPostingFailed as e:
            warnings.append(e.as_warning())
            log_warning(
                "pms_posting", staff.staff_id, "Posteo fallido",
                f"record_id={record.id}, room={record.room_number}, error={e.message}",
            )

    room_status = project(db, prop, day, snapshot, room_number=room.room_number).rooms[0]
    return MarkConsumptionResult(
        room=room_status,
        consumption=record,
        already_consumed=marked.already_consumed,
        warnings=warnings,
    )


def retry_pms_postings(
    db: Session,
    property_id: str,
    adapter: PMSAdapter,
    cache: GuestCache,
    usuario: str = "system",
) -> RetryPostingsResponse:
    """Reintenta los cargos que quedaron sin postear"""
    if db.get(Property, property_id) is None:
        raise NotFound(f"Property {property_id} not found")

    guests = cache.get(property_id).by_id()
    posted, failed, skipped, errors = 0, 0, 0, []
    for record in ledger.list_unposted(db, property_id):
        try:
            if post_to_pms(db, adapter, record, guests.get(record.guest_id), usuario) is None:
                skipped += 1
                continue
            posted += 1
        except PmsPostingFailed as e:
            failed += 1
            errors.append(f"Room {record.room_number} on {record.consumption_date.isoformat()}: {e.message}")

    log_event("pms_posting", usuario, "Reintento de cargos", f"property_id={property_id}, ok={posted}, fallidos={failed}, en_curso={skipped}")
    return RetryPostingsResponse(
        property_id=property_id, posted=posted, failed=failed, skipped=skipped, errors=errors,
    )
