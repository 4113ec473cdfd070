"""API Dependencies - service wiring and staff authentication"""
from typing import Dict, Iterable, Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from domain.auth import StaffUser, StaffUserInDB
from infrastructure.security import decode_access_token, get_password_hash, verify_password
from infrastructure.repositories.in_memory_repositories import (
    InMemoryCatalogRepository, InMemoryReservationRepository
)
from infrastructure.notifications import (
    LoggingNotificationSender, InMemoryEventPublisher, InMemoryActivityLogger
)
from application.services import ReservationService, AvailabilityService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

# Process-wide collaborators
catalog_repo = InMemoryCatalogRepository()
reservation_repo = InMemoryReservationRepository()
notification_sender = LoggingNotificationSender()
event_publisher = InMemoryEventPublisher()
activity_logger = InMemoryActivityLogger()


def get_reservation_service() -> ReservationService:
    return ReservationService(
        reservation_repo,
        catalog_repo,
        notifier=notification_sender,
        event_publisher=event_publisher,
        activity_logger=activity_logger
    )


def get_availability_service() -> AvailabilityService:
    return AvailabilityService(reservation_repo, catalog=catalog_repo)


class StaffDirectory:
    """Front desk accounts. Passwords are bcrypt-hashed on first lookup."""

    def __init__(self, accounts: Iterable[Dict]):
        self._accounts = {account["username"]: dict(account) for account in accounts}
        self._hashes: Dict[str, str] = {}

    def get(self, username: Optional[str]) -> Optional[StaffUserInDB]:
        account = self._accounts.get(username)
        if account is None:
            return None

        if username not in self._hashes:
            self._hashes[username] = get_password_hash(account["password"])

        fields = {k: v for k, v in account.items() if k != "password"}
        return StaffUserInDB(hashed_password=self._hashes[username], **fields)

    def authenticate(self, username: str, password: str) -> Optional[StaffUserInDB]:
        user = self.get(username)
        if user is None or not verify_password(password, user.hashed_password):
            return None
        return user


# In production this is the staff table
staff_directory = StaffDirectory([
    {
        "username": "admin",
        "full_name": "Front Desk Admin",
        "email": "admin@example.com",
        "password": "admin123",
        "disabled": False,
        "user_id": "123e4567-e89b-12d3-a456-426614174000"
    },
    {
        "username": "frontdesk",
        "full_name": "Front Desk",
        "email": "frontdesk@example.com",
        "password": "frontdesk123",
        "disabled": True,
        "user_id": "123e4567-e89b-12d3-a456-426614174001"
    },
])


async def get_current_user(token: str = Depends(oauth2_scheme)) -> StaffUserInDB:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        username = decode_access_token(token)
    except JWTError:
        raise unauthorized

    user = staff_directory.get(username)
    if user is None:
        raise unauthorized
    return user


async def get_current_active_user(current_user: StaffUser = Depends(get_current_user)) -> StaffUser:
    if current_user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user
