"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import List, Optional

from domain.enums import ReservationStatus, PaymentMethod, AddOnPriceType


# ============================================================================
# RESERVATION SCHEMAS
# ============================================================================

class SelectedAddOnRequest(BaseModel):
    """Selected add-on request DTO"""
    add_on_id: str
    quantity: int = Field(ge=0, default=1)


class CreateReservationRequest(BaseModel):
    """Create reservation request DTO"""
    chalet_id: str
    customer_id: Optional[str] = None
    customer_name: str = Field(min_length=1)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    check_in_date: date
    check_out_date: date
    number_of_guests: int = Field(ge=1)
    add_ons: List[SelectedAddOnRequest] = []
    special_requests: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None


class QuoteRequest(BaseModel):
    """Pricing preview request DTO"""
    chalet_id: str
    check_in_date: date
    check_out_date: date
    number_of_guests: Optional[int] = Field(None, ge=1)
    add_ons: List[SelectedAddOnRequest] = []


class CancelReservationRequest(BaseModel):
    """Cancel reservation request DTO"""
    reason: Optional[str] = None


class UpdateStatusRequest(BaseModel):
    """Administrative status override DTO"""
    status: ReservationStatus


class ModifyDatesRequest(BaseModel):
    """Move a booking to new dates"""
    check_in_date: date
    check_out_date: date


class AddOnLineResponse(BaseModel):
    """Add-on line response DTO"""
    add_on_id: str
    name: Optional[str] = None
    price_type: AddOnPriceType = AddOnPriceType.PER_STAY
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class NightlyPriceResponse(BaseModel):
    night: date
    price: Decimal
    rule_id: Optional[str] = None


class QuoteResponse(BaseModel):
    """Pricing preview response DTO"""
    chalet_id: str
    check_in_date: date
    check_out_date: date
    number_of_nights: int
    base_amount: Decimal
    add_ons_amount: Decimal
    deposit_amount: Decimal
    total_amount: Decimal
    add_ons: List[AddOnLineResponse]
    nightly_prices: List[NightlyPriceResponse]


class ReservationResponse(BaseModel):
    """Reservation response DTO"""
    reservation_id: UUID
    booking_number: str
    chalet_id: str
    customer_id: Optional[str] = None
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    check_in_date: date
    check_out_date: date
    number_of_guests: int
    number_of_nights: int
    base_amount: Decimal
    add_ons_amount: Decimal
    deposit_amount: Decimal
    total_amount: Decimal
    add_ons: List[AddOnLineResponse]
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    special_requests: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[str] = None
    checked_out_at: Optional[datetime] = None
    checked_out_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    modified_at: datetime
    created_by: str
    version: int


class DateChangeResponse(BaseModel):
    """Booking after a date change, with the price delta"""
    reservation: ReservationResponse
    previous_check_in_date: date
    previous_check_out_date: date
    previous_total: Decimal
    price_difference: Decimal
    additional_payment_required: bool


class TodayReservationsResponse(BaseModel):
    """Arrivals and departures DTO"""
    check_ins: List[ReservationResponse]
    check_outs: List[ReservationResponse]


# ============================================================================
# AVAILABILITY SCHEMAS
# ============================================================================

class CheckAvailabilityRequest(BaseModel):
    """Check availability request DTO"""
    chalet_id: str
    check_in_date: date
    check_out_date: date


class CheckAvailabilityResponse(BaseModel):
    chalet_id: str
    check_in_date: date
    check_out_date: date
    available: bool


class BlockedDatesResponse(BaseModel):
    """Availability calendar response DTO"""
    chalet_id: str
    start_date: date
    end_date: date
    blocked_dates: List[date]


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str


class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool
