"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field, validator
from uuid import UUID, uuid4
from datetime import datetime, date
from typing import Optional, List
from decimal import Decimal
import random

from domain.enums import (
    ReservationStatus, PaymentStatus, PaymentMethod, AddOnPriceType, NON_BLOCKING_STATUSES
)
from domain.exceptions import InvalidStatusError, AlreadyCancelledError, CannotCancelError
from domain.value_objects import DateRange, AddOnLine, StayQuote


class Unit(BaseModel):
    """Chalet - a bookable physical unit"""
    unit_id: str
    name: str = ""
    capacity: int = Field(ge=1)
    base_price: Decimal = Field(ge=0)
    weekend_price: Decimal = Field(ge=0)
    is_active: bool = True

    class Config:
        from_attributes = True


class PriceRule(BaseModel):
    """Date-bounded price override or multiplier for a chalet.

    A rule carries an absolute ``price``, a ``price_multiplier``, or neither.
    ``priority`` is catalog metadata; resolution is first match in sequence order.
    """
    rule_id: str = Field(default_factory=lambda: str(uuid4()))
    unit_id: str
    name: str = ""
    start_date: date
    end_date: date
    price: Optional[Decimal] = Field(default=None, ge=0)
    price_multiplier: Optional[Decimal] = Field(default=None, ge=0)
    priority: int = 0
    is_active: bool = True

    class Config:
        from_attributes = True

    @validator('start_date', 'end_date', pre=True)
    def strip_time_of_day(cls, v):
        if isinstance(v, datetime):
            return v.date()
        return v

    @validator('price_multiplier')
    def single_pricing_mode(cls, v, values):
        if v is not None and values.get('price') is not None:
            raise ValueError('A price rule sets either price or price_multiplier, not both')
        return v

    def covers(self, night: date) -> bool:
        return self.start_date <= night <= self.end_date


class AddOnCatalogEntry(BaseModel):
    """Optional paid extra"""
    add_on_id: str
    name: str = ""
    price: Decimal = Field(ge=0)
    price_type: AddOnPriceType = AddOnPriceType.PER_STAY
    is_active: bool = True

    class Config:
        from_attributes = True


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity"""

    # Identity
    reservation_id: UUID = Field(default_factory=uuid4)
    booking_number: str

    # References to other contexts
    unit_id: str
    customer_id: Optional[str] = None
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None

    # Stay
    date_range: DateRange
    number_of_guests: int = Field(ge=1)
    number_of_nights: int = Field(ge=1)

    # Pricing, stored to the cent
    base_amount: Decimal
    add_ons_amount: Decimal = Decimal("0.00")
    deposit_amount: Decimal = Decimal("0.00")
    total_amount: Decimal
    add_on_lines: List[AddOnLine] = []

    # Enums/Status
    status: ReservationStatus = ReservationStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[PaymentMethod] = None
    special_requests: Optional[str] = None

    # Lifecycle timestamps
    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[str] = None
    checked_out_at: Optional[datetime] = None
    checked_out_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    # Metadata
    created_at: datetime = Field(default_factory=datetime.utcnow)
    modified_at: datetime = Field(default_factory=datetime.utcnow)
    created_by: str = "SYSTEM"
    version: int = 1

    class Config:
        from_attributes = True

    @validator('number_of_nights')
    def nights_match_date_range(cls, v, values):
        date_range = values.get('date_range')
        if date_range is not None and v != date_range.nights():
            raise ValueError('number_of_nights must equal the nights between check-in and check-out')
        return v

    @validator('total_amount')
    def total_is_base_plus_add_ons(cls, v, values):
        if 'base_amount' in values and 'add_ons_amount' in values:
            if v != values['base_amount'] + values['add_ons_amount']:
                raise ValueError('total_amount must equal base_amount + add_ons_amount')
        return v

    @property
    def check_in_date(self) -> date:
        return self.date_range.check_in

    @property
    def check_out_date(self) -> date:
        return self.date_range.check_out

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def generate_booking_number(prefix: str = "C", today: Optional[date] = None) -> str:
        """Human booking number: <prefix>-<YYMMDD>-<3 digits>"""
        today = today or date.today()
        return f"{prefix}-{today.strftime('%y%m%d')}-{random.randint(0, 999):03d}"

    # ==================== STATE TRANSITION METHODS ====================
    def confirm(self) -> None:
        """Confirm a pending reservation"""
        if self.status != ReservationStatus.PENDING:
            raise InvalidStatusError(
                f"Cannot confirm a booking with status: {self.status.value}"
            )

        self._transition(ReservationStatus.CONFIRMED)

    def check_in(self, staff_id: Optional[str]) -> None:
        """Mark guest as checked in"""
        if self.status not in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED):
            raise InvalidStatusError(
                f"Cannot check in a booking with status: {self.status.value}"
            )

        self.checked_in_at = datetime.utcnow()
        self.checked_in_by = staff_id
        self._transition(ReservationStatus.CHECKED_IN)

    def check_out(self, staff_id: Optional[str]) -> None:
        """Mark guest as checked out"""
        if self.status != ReservationStatus.CHECKED_IN:
            raise InvalidStatusError(
                f"Cannot check out a booking with status: {self.status.value}"
            )

        self.checked_out_at = datetime.utcnow()
        self.checked_out_by = staff_id
        self._transition(ReservationStatus.CHECKED_OUT)

    def cancel(self, reason: Optional[str]) -> None:
        """Cancel reservation"""
        if self.status == ReservationStatus.CANCELLED:
            raise AlreadyCancelledError()
        if not self.is_cancellable():
            raise CannotCancelError()

        self.cancelled_at = datetime.utcnow()
        self.cancellation_reason = reason
        self._transition(ReservationStatus.CANCELLED)

    def mark_no_show(self) -> None:
        """Mark guest as no-show"""
        if self.status not in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED):
            raise InvalidStatusError(
                f"Cannot mark as no-show with status: {self.status.value}"
            )

        self._transition(ReservationStatus.NO_SHOW)

    def reschedule(self, date_range: DateRange, quote: StayQuote) -> None:
        """Move the stay to new dates, taking the repriced amounts"""
        if not self.is_modifiable():
            raise InvalidStatusError(
                f"Cannot modify a booking with status: {self.status.value}"
            )

        self.date_range = date_range
        self.number_of_nights = quote.nights
        self.base_amount = quote.base_amount
        self.add_ons_amount = quote.add_ons_amount
        self.deposit_amount = quote.deposit_amount
        self.total_amount = quote.total_amount
        self.add_on_lines = list(quote.add_on_lines)
        self._touch()

    def administrative_override(self, new_status: ReservationStatus) -> ReservationStatus:
        """Set any status without state machine checks (manual staff corrections).

        Returns the previous status so the caller can audit the change.
        """
        previous = self.status
        self._transition(ReservationStatus(new_status))
        return previous

    # ==================== QUERY METHODS ====================
    def is_cancellable(self) -> bool:
        """Completed and already cancelled stays cannot be cancelled"""
        return self.status not in (ReservationStatus.CANCELLED, ReservationStatus.CHECKED_OUT)

    def is_modifiable(self) -> bool:
        """Dates can only move before the guest arrives"""
        return self.status in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)

    def blocks_unit(self) -> bool:
        """Cancelled and no-show reservations do not occupy the chalet"""
        return self.status not in NON_BLOCKING_STATUSES

    def get_nights(self) -> int:
        """Get number of nights"""
        return self.date_range.nights()

    # ==================== PRIVATE METHODS ====================
    def _transition(self, new_status: ReservationStatus) -> None:
        self.status = new_status
        self._touch()

    def _touch(self) -> None:
        self.modified_at = datetime.utcnow()
        self.version += 1


class StayChange(BaseModel):
    """Outcome of moving a booking to new dates"""
    reservation: Reservation
    previous_check_in: date
    previous_check_out: date
    previous_total: Decimal

    @property
    def price_difference(self) -> Decimal:
        """Positive when the guest owes more, negative when a refund is due"""
        return self.reservation.total_amount - self.previous_total

    @property
    def additional_payment_required(self) -> bool:
        return self.price_difference > 0
