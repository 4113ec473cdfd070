"""Domain Entities - Front desk staff"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from typing import Optional


class StaffUser(BaseModel):
    """Staff member operating check-in, check-out and cancellations"""
    user_id: UUID = Field(default_factory=uuid4)
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool = False

    class Config:
        from_attributes = True

    @property
    def actor_id(self) -> str:
        """Recorded as staff_id on arrivals/departures and as the audit actor"""
        return str(self.user_id)


class StaffUserInDB(StaffUser):
    hashed_password: str
