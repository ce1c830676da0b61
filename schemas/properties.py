from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import pytz

from models.core import RoomStatus


class PropertyBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    timezone: Optional[str] = Field(None, max_length=64, description="IANA, ej: America/Toronto")
    breakfast_price: Optional[Decimal] = Field(None, ge=0)
    active: bool = True

    @field_validator("timezone")
    @classmethod
    def _timezone_valida(cls, value):
        if value is not None and value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value


class PropertyCreate(PropertyBase):
    property_id: str = Field(..., min_length=1, max_length=40)


class PropertyRead(PropertyBase):
    property_id: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RoomCreate(BaseModel):
    room_number: str = Field(..., min_length=1, max_length=20)
    floor: Optional[int] = Field(None, ge=0)
    room_type: str = Field("standard", min_length=1, max_length=40)
    max_occupancy: int = Field(2, ge=1)
    status: RoomStatus = RoomStatus.AVAILABLE

    @field_validator("room_number", mode="before")
    @classmethod
    def _room_como_texto(cls, value):
        if isinstance(value, int):
            return str(value)
        return value.strip() if isinstance(value, str) else value


class RoomUpdate(BaseModel):
    floor: Optional[int] = Field(None, ge=0)
    room_type: Optional[str] = Field(None, min_length=1, max_length=40)
    max_occupancy: Optional[int] = Field(None, ge=1)
    status: Optional[RoomStatus] = None

    @model_validator(mode="before")
    @classmethod
    def validar_datos(cls, data):
        if isinstance(data, dict) and data:
            return data
        raise ValueError("At least one field is required")


class RoomRead(BaseModel):
    id: int
    property_id: str
    room_number: str
    floor: Optional[int] = None
    room_type: str
    max_occupancy: int
    status: RoomStatus

    model_config = ConfigDict(from_attributes=True)
