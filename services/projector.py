"""
Room Grid Projector
Combina la ocupación reconciliada con el ledger del día y arma los
RoomBreakfastStatus que consume la app móvil.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.core import ConsumptionStatus, Property, Room, RoomStatus
from schemas.room_grid import RoomBreakfastStatus, RoomGridSummary
from services import ledger
from services.guest_cache import GuestSnapshot
from services.reconciler import ReconcileResult, RoomOccupancy, reconcile
from utils.errors import NotFound
from utils.timezone import get_operational_date


@dataclass
class GridProjection:
    property_id: str
    day: date
    rooms: List[RoomBreakfastStatus] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def summary(self) -> RoomGridSummary:
        occupied = sum(1 for r in self.rooms if r.has_guest)
        maintenance = sum(
            1 for r in self.rooms if r.status in (RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_ORDER)
        )
        with_breakfast = sum(1 for r in self.rooms if r.breakfast_package)
        consumed = sum(1 for r in self.rooms if r.consumed_today)
        return RoomGridSummary(
            total_rooms=len(self.rooms),
            occupied_rooms=occupied,
            available_rooms=max(len(self.rooms) - occupied - maintenance, 0),
            maintenance_rooms=maintenance,
            rooms_with_breakfast=with_breakfast,
            consumed_today=consumed,
            remaining_breakfasts=with_breakfast - consumed,
            vip_rooms=sum(1 for r in self.rooms if r.is_vip),
            upset_rooms=sum(1 for r in self.rooms if r.is_upset),
        )

    def flagged(self, flag: str) -> List[RoomBreakfastStatus]:
        """Habitaciones con huésped marcado (flag: is_vip | is_upset)"""
        return [r for r in self.rooms if r.has_guest and getattr(r, flag)]


def load_rooms(db: Session, property_id: str) -> List[Room]:
    return list(db.execute(select(Room).where(Room.property_id == property_id)).scalars())


def reconcile_property(db: Session, prop: Property, snapshot: GuestSnapshot, day: Optional[date] = None) -> ReconcileResult:
    """Reconciliación para una propiedad leyendo el inventario de la base"""
    as_of = day or get_operational_date(prop.timezone)
    return reconcile(load_rooms(db, prop.property_id), snapshot.guests, as_of)


def _status_for(db: Session, occ: RoomOccupancy, day: date, allow_create: bool) -> RoomBreakfastStatus:
    room = occ.room
    status = RoomBreakfastStatus(
        property_id=room.property_id,
        room_number=room.room_number,
        floor=room.floor,
        room_type=room.room_type,
        status=room.status,
    )
    guest = occ.guest
    if guest is None:
        return status

    status.has_guest = True
    status.guest_id = guest.pms_guest_id
    status.guest_name = guest.full_name
    status.breakfast_package = guest.breakfast_package
    status.breakfast_count = guest.breakfast_count
    status.check_in_date = guest.check_in_date
    status.check_out_date = guest.check_out_date
    status.is_vip = guest.is_vip
    status.is_upset = guest.is_upset
    status.special_requests = guest.special_requests

    if not guest.breakfast_package:
        return status

    if allow_create:
        record = ledger.get_or_create(db, room.property_id, room.room_number, day, guest.pms_guest_id)
    else:
        record = ledger.get(db, room.property_id, room.room_number, day)

    if record is not None:
        status.consumed_today = record.status == ConsumptionStatus.CONSUMED
        status.consumed_at = record.consumed_at
        status.consumed_by = record.consumed_by or ""
        status.payment_method = record.payment_method
        status.pms_posted = record.pms_posted
    return status


def project(
    db: Session,
    prop: Property,
    day: date,
    snapshot: GuestSnapshot,
    room_number: Optional[str] = None,
) -> GridProjection:
    """
    Proyección del grid para `day`.

    Las habitaciones con paquete de desayuno crean su registro pending de forma
    perezosa; para fechas futuras solo se consulta.
    """
    reconciled = reconcile_property(db, prop, snapshot, day)
    allow_create = day <= get_operational_date(prop.timezone)

    occupancies = reconciled.occupancies
    if room_number is not None:
        occ = reconciled.for_room(room_number)
        if occ is None:
            raise NotFound(f"Room {room_number} not found in property {prop.property_id}")
        occupancies = [occ]

    projection = GridProjection(property_id=prop.property_id, day=day, warnings=list(reconciled.warnings))
    for occ in occupancies:
        projection.rooms.append(_status_for(db, occ, day, allow_create))
    return projection
