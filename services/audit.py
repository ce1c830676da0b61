"""
Auditoría persistida de consumos, cargos, cierres y sincronizaciones.
record_event solo agrega el evento a la sesión: el commit lo hace quien
aplica el cambio, así evento y cambio quedan en la misma transacción.
"""
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models.core import ConsumptionEvent, EventType


def record_event(
    db: Session,
    tipo: EventType,
    usuario: str,
    property_id: str,
    room_number: Optional[str] = None,
    day: Optional[date] = None,
    payload: Optional[dict] = None,
    descripcion: Optional[str] = None,
) -> ConsumptionEvent:
    evento = ConsumptionEvent(
        property_id=property_id,
        room_number=room_number,
        consumption_date=day,
        tipo_evento=tipo,
        usuario=usuario,
        payload=payload,
        descripcion=descripcion,
    )
    db.add(evento)
    return evento


def list_events(
    db: Session,
    property_id: str,
    day: Optional[date] = None,
    room_number: Optional[str] = None,
    limit: int = 200,
) -> List[ConsumptionEvent]:
    query = select(ConsumptionEvent).where(ConsumptionEvent.property_id == property_id)
    if day is not None:
        query = query.where(ConsumptionEvent.consumption_date == day)
    if room_number is not None:
        query = query.where(ConsumptionEvent.room_number == room_number)
    query = query.order_by(ConsumptionEvent.timestamp.asc(), ConsumptionEvent.id.asc()).limit(limit)
    return list(db.execute(query).scalars())
