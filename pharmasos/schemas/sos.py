"""SOS request schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class SosCreate(BaseModel):
    medicine_name: str = Field(..., min_length=1, max_length=255)
    generic_name: str | None = None
    quantity: int = Field(default=1, ge=1, le=1000)
    urgency_level: str = Field(default="HIGH", pattern="^(LOW|MEDIUM|HIGH)$")
    patient_name: str = Field(..., min_length=1, max_length=255)
    contact_number: str = Field(..., min_length=3, max_length=32)
    address: str = Field(..., min_length=1)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    additional_notes: str | None = None
    prescription_required: bool = False
    radius_km: float | None = Field(default=None, gt=0, le=500, description="Override the default dispatch radius")


class SosDispatchRequest(BaseModel):
    radius_km: float | None = Field(default=None, gt=0, le=500)


class SosRespondRequest(BaseModel):
    """Pharmacy answers an SOS request."""

    response: str = Field(..., description="accepted | rejected")
    note: str | None = Field(default=None, max_length=1000)


class PharmacyResponseOut(BaseModel):
    id: str
    sos_id: str
    pharmacy_id: str
    response: str
    note: str | None
    responded_at: datetime

    model_config = {"from_attributes": True}


class SosRequestResponse(BaseModel):
    id: str
    patient_id: str
    medicine_name: str
    generic_name: str | None
    quantity: int
    urgency_level: str
    patient_name: str
    contact_number: str
    address: str
    latitude: float | None
    longitude: float | None
    additional_notes: str | None
    prescription_required: bool
    status: str
    accepted_by_pharmacy_id: str | None
    accepted_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SosDetailResponse(SosRequestResponse):
    responses: list[PharmacyResponseOut] = []


class SosCreatedResponse(BaseModel):
    sos: SosRequestResponse
    notified_count: int | None  # None when dispatch failed
    dispatch_error: str | None = None


class SosDispatchResponse(BaseModel):
    sos_id: str
    notified_count: int


class PharmacyContact(BaseModel):
    pharmacy_id: str
    name: str
    phone: str | None
    address: str | None
    latitude: float | None
    longitude: float | None
    distance_km: float | None


class SosRespondResponse(BaseModel):
    decision: str
    sos: SosRequestResponse
    response: PharmacyResponseOut
    pharmacy: PharmacyContact | None = None  # set on acceptance only


class NearbySosResponse(BaseModel):
    sos: SosRequestResponse
    distance_km: float
    distance_formatted: str
