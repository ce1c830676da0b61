from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PMSGuestStatus(str, Enum):
    RESERVED = "reserved"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    NO_SHOW = "no_show"


class PMSGuest(BaseModel):
    """Huésped tal como lo entrega el PMS (copia de solo lectura)"""
    pms_guest_id: str = Field(..., min_length=1, alias="guest_id")
    reservation_id: str = Field(..., min_length=1)
    room_number: str = Field(..., min_length=1)
    first_name: str = ""
    last_name: str = ""
    check_in_date: date
    check_out_date: date
    breakfast_package: bool = False
    breakfast_count: int = Field(0, ge=0)
    ohip_number: Optional[str] = None
    status: PMSGuestStatus = PMSGuestStatus.CHECKED_IN
    is_vip: bool = False
    is_upset: bool = False
    special_requests: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("check_in_date", "check_out_date", mode="before")
    @classmethod
    def _solo_fecha(cls, value):
        # Algunos PMS mandan datetime ISO completo
        if isinstance(value, str) and "T" in value:
            return value.split("T")[0]
        if isinstance(value, datetime):
            return value.date()
        return value

    @field_validator("room_number", mode="before")
    @classmethod
    def _room_como_texto(cls, value):
        if isinstance(value, int):
            return str(value)
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _validar_estadia(self):
        if self.check_in_date > self.check_out_date:
            raise ValueError("check_in_date must be on or before check_out_date")
        return self

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def is_active_on(self, day: date) -> bool:
        if self.status in (PMSGuestStatus.CHECKED_OUT, PMSGuestStatus.NO_SHOW):
            return False
        return self.check_in_date <= day < self.check_out_date


class ChargeRequest(BaseModel):
    """Cargo de desayuno a postear en el folio del huésped"""
    guest_id: str
    reservation_id: str
    room_number: str
    property_id: str
    charge_code: str
    department_code: str
    amount: Decimal
    description: str
    transaction_date: date
    reference: str


class ChargeResponse(BaseModel):
    success: bool = True
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None
