from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

EARLIEST_YEAR = 1900


class VehicleBase(BaseModel):
    make: str = Field(min_length=1, max_length=120)
    model: str = Field(min_length=1, max_length=120)
    variant: Optional[str] = None
    year: int
    vin: Optional[str] = Field(default=None, max_length=50)
    registration_number: str = Field(min_length=1, max_length=50)
    mileage: Optional[int] = Field(default=None, ge=0)
    color: Optional[str] = None
    body_type: Optional[str] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    engine_size: Optional[str] = None
    number_of_doors: Optional[int] = Field(default=None, ge=1, le=9)
    condition: Optional[str] = None
    service_history: Optional[str] = None
    modifications: Optional[str] = None
    description: Optional[str] = None

    @field_validator("year")
    @classmethod
    def valid_year(cls, v: int) -> int:
        if v < EARLIEST_YEAR or v > date.today().year + 1:
            raise ValueError(f"year must be between {EARLIEST_YEAR} and next year")
        return v

    @field_validator("registration_number", "vin")
    @classmethod
    def normalize_identifier(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None


class VehicleCreate(VehicleBase):
    pass


class VehicleUpdate(BaseModel):
    make: Optional[str] = Field(default=None, min_length=1, max_length=120)
    model: Optional[str] = Field(default=None, min_length=1, max_length=120)
    variant: Optional[str] = None
    year: Optional[int] = None
    vin: Optional[str] = Field(default=None, max_length=50)
    registration_number: Optional[str] = Field(default=None, min_length=1, max_length=50)
    mileage: Optional[int] = Field(default=None, ge=0)
    color: Optional[str] = None
    body_type: Optional[str] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    engine_size: Optional[str] = None
    number_of_doors: Optional[int] = Field(default=None, ge=1, le=9)
    condition: Optional[str] = None
    service_history: Optional[str] = None
    modifications: Optional[str] = None
    description: Optional[str] = None

    @field_validator("year")
    @classmethod
    def valid_year(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and (v < EARLIEST_YEAR or v > date.today().year + 1):
            raise ValueError(f"year must be between {EARLIEST_YEAR} and next year")
        return v

    @field_validator("registration_number", "vin")
    @classmethod
    def normalize_identifier(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip().upper() or None
