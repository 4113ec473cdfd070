"""Domain Value Objects"""
from pydantic import BaseModel, Field, validator
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterator, List, Optional

from domain.enums import AddOnPriceType, DepositType

CENT = Decimal("0.01")


def to_money(amount: Decimal) -> Decimal:
    """Round an amount to two decimal places for storage"""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def is_weekend_night(night: date) -> bool:
    """Friday and Saturday nights are charged at the weekend price"""
    return night.weekday() in (4, 5)


class DateRange(BaseModel):
    """Value Object for a half-open stay range [check_in, check_out)"""
    check_in: date
    check_out: date

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out must be after check-in')
        return v

    def nights(self) -> int:
        """Calculate number of nights"""
        return (self.check_out - self.check_in).days

    def each_night(self) -> Iterator[date]:
        """Yield every occupied night; the check-out day is not occupied"""
        current = self.check_in
        while current < self.check_out:
            yield current
            current += timedelta(days=1)

    def overlaps(self, check_in: date, check_out: date) -> bool:
        return check_in < self.check_out and check_out > self.check_in

    class Config:
        frozen = True


class DepositPolicy(BaseModel):
    """Global deposit configuration"""
    deposit_type: DepositType = DepositType.PERCENTAGE
    deposit_percentage: Decimal = Field(default=Decimal("30"), ge=0, le=100)
    deposit_fixed: Decimal = Field(default=Decimal("100"), ge=0)

    class Config:
        frozen = True


class SelectedAddOn(BaseModel):
    """Add-on requested by the guest"""
    add_on_id: str
    quantity: int = 1

    class Config:
        frozen = True


class AddOnLine(BaseModel):
    """Add-on price snapshot captured at booking time"""
    add_on_id: str
    name: Optional[str] = None
    price_type: AddOnPriceType = AddOnPriceType.PER_STAY
    quantity: int = Field(ge=1)
    unit_price: Decimal
    subtotal: Decimal

    class Config:
        frozen = True


class NightlyPrice(BaseModel):
    night: date
    price: Decimal
    rule_id: Optional[str] = None

    class Config:
        frozen = True


class StayQuote(BaseModel):
    """Result of pricing a stay; amounts are unrounded until stored"""
    nights: int
    base_amount: Decimal
    add_ons_amount: Decimal
    deposit_amount: Decimal
    total_amount: Decimal
    add_on_lines: List[AddOnLine] = []
    nightly_prices: List[NightlyPrice] = []

    class Config:
        frozen = True

    def rounded(self) -> "StayQuote":
        """Return the quote with every amount rounded once, to the cent.

        The total is rebuilt from the rounded parts so that
        total == base + add-ons holds exactly after rounding.
        """
        base_amount = to_money(self.base_amount)
        add_ons_amount = to_money(self.add_ons_amount)
        return StayQuote(
            nights=self.nights,
            base_amount=base_amount,
            add_ons_amount=add_ons_amount,
            deposit_amount=to_money(self.deposit_amount),
            total_amount=base_amount + add_ons_amount,
            add_on_lines=[
                line.model_copy(update={
                    "unit_price": to_money(line.unit_price),
                    "subtotal": to_money(line.subtotal),
                })
                for line in self.add_on_lines
            ],
            nightly_prices=self.nightly_prices,
        )
