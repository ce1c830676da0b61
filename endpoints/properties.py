"""
Endpoints para configuración de Propiedades y su inventario de Habitaciones
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import conexion
from models.core import Property, Room
from schemas.properties import PropertyBase, PropertyCreate, PropertyRead, RoomCreate, RoomRead, RoomUpdate
from utils.dependencies import StaffContext, ensure_property_access, get_staff_context, require_manager
from utils.errors import NotFound, ValidationError
from utils.logging_utils import log_event
from utils.responses import success_response

router = APIRouter(prefix="/properties", tags=["properties"])


def _get_property_or_404(db: Session, property_id: str) -> Property:
    prop = db.get(Property, property_id)
    if prop is None:
        raise NotFound(f"Property {property_id} not found")
    return prop


def _get_room_or_404(db: Session, property_id: str, room_number: str) -> Room:
    room = db.execute(
        select(Room).where(Room.property_id == property_id, Room.room_number == room_number)
    ).scalar_one_or_none()
    if room is None:
        raise NotFound(f"Room {room_number} not found in property {property_id}")
    return room


# ========== PROPIEDADES ==========

@router.get("")
def list_properties(
    include_inactive: bool = Query(False),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
):
    query = select(Property).order_by(Property.property_id)
    if not include_inactive:
        query = query.where(Property.active.is_(True))
    props = [p for p in db.execute(query).scalars() if staff.can_access(p.property_id)]
    return success_response([PropertyRead.model_validate(p) for p in props])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_property(
    payload: PropertyCreate,
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(require_manager),
):
    ensure_property_access(staff, payload.property_id)
    if db.get(Property, payload.property_id) is not None:
        raise ValidationError(f"Property {payload.property_id} already exists")

    prop = Property(**payload.model_dump())
    db.add(prop)
    db.commit()
    db.refresh(prop)

    log_event("propiedades", staff.staff_id, "Crear propiedad", f"property_id={prop.property_id}")
    return success_response(PropertyRead.model_validate(prop), message="Property created", status_code=201)


@router.get("/{property_id}")
def get_property(
    property_id: str,
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
):
    ensure_property_access(staff, property_id)
    return success_response(PropertyRead.model_validate(_get_property_or_404(db, property_id)))


@router.put("/{property_id}")
def update_property(
    property_id: str,
    payload: PropertyBase,
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(require_manager),
):
    ensure_property_access(staff, property_id)
    prop = _get_property_or_404(db, property_id)

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(prop, field, value)
    db.commit()
    db.refresh(prop)

    log_event("propiedades", staff.staff_id, "Actualizar propiedad", f"property_id={property_id}")
    return success_response(PropertyRead.model_validate(prop))


# ========== HABITACIONES ==========

@router.get("/{property_id}/rooms")
def list_rooms(
    property_id: str,
    floor: Optional[int] = Query(None),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
):
    ensure_property_access(staff, property_id)
    _get_property_or_404(db, property_id)

    query = select(Room).where(Room.property_id == property_id)
    if floor is not None:
        query = query.where(Room.floor == floor)
    rooms = db.execute(query).scalars().all()
    rooms = sorted(rooms, key=lambda r: (not r.room_number.isdigit(), r.room_number.zfill(10)))
    return success_response([RoomRead.model_validate(r) for r in rooms])


@router.post("/{property_id}/rooms", status_code=status.HTTP_201_CREATED)
def create_room(
    property_id: str,
    payload: RoomCreate,
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(require_manager),
):
    ensure_property_access(staff, property_id)
    _get_property_or_404(db, property_id)

    room = Room(property_id=property_id, **payload.model_dump())
    db.add(room)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError(f"Room {payload.room_number} already exists in property {property_id}")
    db.refresh(room)

    log_event("habitaciones", staff.staff_id, "Crear habitacion", f"property_id={property_id}, room={room.room_number}")
    return success_response(RoomRead.model_validate(room), message="Room created", status_code=201)


@router.put("/{property_id}/rooms/{room_number}")
def update_room(
    property_id: str,
    room_number: str,
    payload: RoomUpdate,
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(require_manager),
):
    """El número de habitación no se cambia: el ledger lo referencia"""
    ensure_property_access(staff, property_id)
    room = _get_room_or_404(db, property_id, room_number)

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(room, field, value)
    db.commit()
    db.refresh(room)

    log_event("habitaciones", staff.staff_id, "Actualizar habitacion", f"property_id={property_id}, room={room_number}")
    return success_response(RoomRead.model_validate(room))
