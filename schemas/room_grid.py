from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.core import ConsumptionStatus, EventType, PaymentMethod, RoomStatus


# ========== ROOM GRID ==========

class RoomBreakfastStatus(BaseModel):
    """Vista por habitación: Room + ocupación + registro de consumo del día"""
    property_id: str
    room_number: str
    floor: Optional[int] = None
    room_type: str
    status: RoomStatus
    has_guest: bool = False
    guest_id: Optional[str] = None
    guest_name: str = ""
    breakfast_package: bool = False
    breakfast_count: int = 0
    consumed_today: bool = False
    consumed_at: Optional[datetime] = None
    consumed_by: str = ""
    payment_method: Optional[PaymentMethod] = None
    pms_posted: bool = False
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None
    is_vip: bool = False
    is_upset: bool = False
    special_requests: Optional[str] = None


class RoomGridSummary(BaseModel):
    total_rooms: int = 0
    occupied_rooms: int = 0
    available_rooms: int = 0
    maintenance_rooms: int = 0
    rooms_with_breakfast: int = 0
    consumed_today: int = 0
    remaining_breakfasts: int = 0
    vip_rooms: int = 0
    upset_rooms: int = 0


class RoomGridResponse(RoomGridSummary):
    property_id: str
    date: date
    rooms: List[RoomBreakfastStatus]
    warnings: List[str] = []


# ========== CONSUMO ==========

class MarkConsumptionRequest(BaseModel):
    property_id: str = Field(..., min_length=1, max_length=40)
    room_number: str = Field(..., min_length=1, max_length=20)
    payment_method: PaymentMethod = PaymentMethod.ROOM_CHARGE
    notes: Optional[str] = Field(None, max_length=500)
    consumption_date: Optional[date] = Field(None, description="Por defecto: hoy en la timezone de la propiedad")

    @field_validator("room_number", "property_id", mode="before")
    @classmethod
    def _strip(cls, value):
        if isinstance(value, int):
            return str(value)
        return value.strip() if isinstance(value, str) else value


class ConsumptionRecordRead(BaseModel):
    id: int
    property_id: str
    room_number: str
    guest_id: str
    consumption_date: date
    status: ConsumptionStatus
    consumed_at: Optional[datetime] = None
    consumed_by: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    ohip_covered: bool = False
    pms_posted: bool = False
    pms_transaction_id: Optional[str] = None
    amount: Decimal = Decimal("0")
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class MarkConsumptionResponse(BaseModel):
    room: RoomBreakfastStatus
    consumption: ConsumptionRecordRead
    already_consumed: bool = False
    warnings: List[Dict[str, Any]] = []


class CloseDayResponse(BaseModel):
    property_id: str
    date: date
    closed_records: int


class RetryPostingsResponse(BaseModel):
    property_id: str
    posted: int
    failed: int
    skipped: int = 0  # posteos en curso en otro proceso
    errors: List[str] = []


# ========== SYNC PMS ==========

class PMSSyncResponse(BaseModel):
    synced_guests: int = 0
    updated_rooms: int = 0
    errors: List[str] = []
    message: str = ""
    result: str = "success"  # success | partial | failure | skipped


class PMSIntegrationStatus(BaseModel):
    property_id: str
    last_sync_at: Optional[datetime] = None
    last_result: Optional[str] = None
    synced_count: int = 0
    attempts: int = 0
    errors: List[str] = []
    cached_guests: int = 0


# ========== REPORTES ==========

class DailyReport(BaseModel):
    property_id: str
    date: date
    total_rooms: int
    occupied_rooms: int
    rooms_with_breakfast: int
    consumed_breakfasts: int
    no_shows: int
    ohip_covered: int
    pms_unposted: int
    total_revenue: Decimal
    consumption_rate: float
    occupancy_rate: float
    warnings: List[str] = []


class DailyTrend(BaseModel):
    date: date
    consumed: int = 0
    pending: int = 0
    no_show: int = 0
    revenue: Decimal = Decimal("0")
    payment_methods: Dict[str, int] = {}


class ConsumptionTrends(BaseModel):
    property_id: str
    start_date: date
    end_date: date
    days: List[DailyTrend]
    total_consumed: int
    total_revenue: Decimal
    average_daily_consumed: float


# ========== AUDITORÍA ==========

class ConsumptionEventRead(BaseModel):
    id: int
    property_id: str
    room_number: Optional[str] = None
    consumption_date: Optional[date] = None
    tipo_evento: EventType
    usuario: str
    timestamp: datetime
    payload: Optional[Dict[str, Any]] = None
    descripcion: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ========== ENVELOPE ==========

class APIError(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class APIResponse(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[APIError] = None
    message: Optional[str] = None
    timestamp: datetime
