"""Domain Enums"""
from enum import Enum


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that no longer hold the chalet
NON_BLOCKING_STATUSES = frozenset({ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW})


class PaymentStatus(str, Enum):
    PENDING = "pending"
    DEPOSIT_PAID = "deposit_paid"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    WHISH = "whish"
    ONLINE = "online"


class AddOnPriceType(str, Enum):
    PER_STAY = "per_stay"
    PER_NIGHT = "per_night"

    @classmethod
    def _missing_(cls, value):
        # Older catalog rows use "one_time"
        if value == "one_time":
            return cls.PER_STAY
        return None


class DepositType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"
