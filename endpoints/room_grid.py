"""
Endpoints del Room Grid de desayunos (consumidos por la app móvil del staff)
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import conexion
from models.core import Property
from schemas.room_grid import (
    CloseDayResponse, ConsumptionEventRead, ConsumptionRecordRead, MarkConsumptionRequest,
    MarkConsumptionResponse, RoomGridResponse,
)
from services import audit, ledger, reports
from services.consumption_handler import mark_breakfast_consumed, retry_pms_postings
from services.guest_cache import GuestCache, get_guest_cache
from services.pms_adapter import PMSAdapter, get_pms_adapter
from services.projector import project
from services.sync_orchestrator import SyncOrchestrator
from utils.dependencies import StaffContext, ensure_property_access, get_staff_context, require_manager
from utils.errors import NotFound
from utils.logging_utils import log_event
from utils.responses import success_response
from utils.timezone import get_operational_date


router = APIRouter(prefix="/room-grid", tags=["Room Grid"])


def get_sync_orchestrator(
    adapter: PMSAdapter = Depends(get_pms_adapter),
    cache: GuestCache = Depends(get_guest_cache),
) -> SyncOrchestrator:
    return SyncOrchestrator(adapter=adapter, cache=cache)


def _get_property(db: Session, property_id: str, staff: StaffContext) -> Property:
    ensure_property_access(staff, property_id)
    prop = db.get(Property, property_id)
    if prop is None:
        raise NotFound(f"Property {property_id} not found")
    return prop


def _warm_cache(db: Session, prop: Property, cache: GuestCache, orchestrator: SyncOrchestrator, staff: StaffContext) -> list:
    """Primera lectura después de arrancar el proceso: sincroniza antes de proyectar"""
    if cache.has_snapshot(prop.property_id):
        return []
    result = orchestrator.sync_from_pms(db, prop.property_id, force=False, usuario=staff.staff_id)
    return [f"Initial PMS sync: {e}" for e in result.errors]


# ========================================================================
# HISTORIAL / REPORTES
# ========================================================================

@router.get("/history")
def get_consumption_history(
    property_id: str = Query(...),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
):
    """Registros del ledger en un rango (por defecto: hoy)"""
    prop = _get_property(db, property_id, staff)
    today = get_operational_date(prop.timezone)
    end = end_date or today
    start = start_date or end
    records = ledger.list_for_property(db, property_id, start, end)
    return success_response([ConsumptionRecordRead.model_validate(r) for r in records])


@router.get("/report/{property_id}")
def get_daily_report(
    property_id: str,
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
    cache: GuestCache = Depends(get_guest_cache),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    prop = _get_property(db, property_id, staff)
    warnings = _warm_cache(db, prop, cache, orchestrator, staff)
    day = day or get_operational_date(prop.timezone)
    report = reports.daily_report(db, prop, day, cache.get(property_id))
    report.warnings = warnings + report.warnings
    log_event("reportes", staff.staff_id, "Reporte diario consultado", f"property_id={property_id}, date={day.isoformat()}")
    return success_response(report)


@router.get("/analytics/{property_id}")
def get_consumption_analytics(
    property_id: str,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
):
    prop = _get_property(db, property_id, staff)
    end = end_date or get_operational_date(prop.timezone)
    start = start_date or end.replace(day=1)
    return success_response(reports.consumption_trends(db, property_id, start, end))


@router.get("/audit/{property_id}")
def get_audit_trail(
    property_id: str,
    day: Optional[date] = Query(None, alias="date"),
    room_number: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(require_manager),
):
    """Eventos de auditoría (consumos, cargos, cierres, syncs)"""
    _get_property(db, property_id, staff)
    events = audit.list_events(db, property_id, day=day, room_number=room_number, limit=limit)
    return success_response([ConsumptionEventRead.model_validate(e) for e in events])


# ========================================================================
# CONSUMO
# ========================================================================

@router.post("/consume")
def consume_breakfast(
    payload: MarkConsumptionRequest,
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
    adapter: PMSAdapter = Depends(get_pms_adapter),
    cache: GuestCache = Depends(get_guest_cache),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    prop = _get_property(db, payload.property_id, staff)
    _warm_cache(db, prop, cache, orchestrator, staff)
    result = mark_breakfast_consumed(db, payload, staff, adapter, cache)
    body = MarkConsumptionResponse(
        room=result.room,
        consumption=ConsumptionRecordRead.model_validate(result.consumption),
        already_consumed=result.already_consumed,
        warnings=result.warnings,
    )
    message = (
        "Breakfast was already recorded for this room today"
        if result.already_consumed
        else "Breakfast consumption recorded successfully"
    )
    return success_response(body, message=message)


@router.post("/close-day/{property_id}")
def close_breakfast_day(
    property_id: str,
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(require_manager),
):
    """Cierra el día: los pending que quedan pasan a no_show"""
    prop = _get_property(db, property_id, staff)
    day = day or get_operational_date(prop.timezone)
    closed = ledger.close_day(db, property_id, day, usuario=staff.staff_id)
    return success_response(CloseDayResponse(property_id=property_id, date=day, closed_records=closed))


@router.post("/postings/retry/{property_id}")
def retry_postings(
    property_id: str,
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(require_manager),
    adapter: PMSAdapter = Depends(get_pms_adapter),
    cache: GuestCache = Depends(get_guest_cache),
):
    _get_property(db, property_id, staff)
    return success_response(retry_pms_postings(db, property_id, adapter, cache, usuario=staff.staff_id))


# ========================================================================
# SYNC PMS
# ========================================================================

@router.post("/sync/{property_id}")
def sync_from_pms(
    property_id: str,
    force: bool = Query(False),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(require_manager),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    _get_property(db, property_id, staff)
    result = orchestrator.sync_from_pms(db, property_id, force=force, usuario=staff.staff_id)
    return success_response(result, message=result.message)


@router.get("/sync/{property_id}/status")
def get_sync_status(
    property_id: str,
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    _get_property(db, property_id, staff)
    return success_response(orchestrator.status(db, property_id))


# ========================================================================
# GRID
# ========================================================================

def _flagged_rooms(db, prop, cache, orchestrator, staff, day, flag):
    warnings = _warm_cache(db, prop, cache, orchestrator, staff)
    day = day or get_operational_date(prop.timezone)
    projection = project(db, prop, day, cache.get(prop.property_id))
    return {
        "property_id": prop.property_id,
        "date": day,
        "rooms": projection.flagged(flag),
        "warnings": warnings + projection.warnings,
    }


@router.get("/{property_id}/vip")
def get_vip_rooms(
    property_id: str,
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
    cache: GuestCache = Depends(get_guest_cache),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Habitaciones con huésped VIP (para atención prioritaria en el salón)"""
    prop = _get_property(db, property_id, staff)
    return success_response(_flagged_rooms(db, prop, cache, orchestrator, staff, day, "is_vip"))


@router.get("/{property_id}/upset")
def get_upset_rooms(
    property_id: str,
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
    cache: GuestCache = Depends(get_guest_cache),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    prop = _get_property(db, property_id, staff)
    return success_response(_flagged_rooms(db, prop, cache, orchestrator, staff, day, "is_upset"))


@router.get("/{property_id}/room/{room_number}")
def get_room_details(
    property_id: str,
    room_number: str,
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
    cache: GuestCache = Depends(get_guest_cache),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    prop = _get_property(db, property_id, staff)
    warnings = _warm_cache(db, prop, cache, orchestrator, staff)
    day = day or get_operational_date(prop.timezone)
    projection = project(db, prop, day, cache.get(property_id), room_number=room_number)
    return success_response({"room": projection.rooms[0], "warnings": warnings + projection.warnings})


@router.get("/{property_id}")
def get_room_grid(
    property_id: str,
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(conexion.get_db),
    staff: StaffContext = Depends(get_staff_context),
    cache: GuestCache = Depends(get_guest_cache),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    prop = _get_property(db, property_id, staff)
    warnings = _warm_cache(db, prop, cache, orchestrator, staff)
    day = day or get_operational_date(prop.timezone)

    projection = project(db, prop, day, cache.get(property_id))
    response = RoomGridResponse(
        property_id=property_id,
        date=day,
        rooms=projection.rooms,
        warnings=warnings + projection.warnings,
        **projection.summary().model_dump(),
    )
    return success_response(response)
