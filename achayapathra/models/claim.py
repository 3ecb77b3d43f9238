from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Claim(SQLModel, table=True):
    __tablename__ = "claims"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Claimed donation
    donation_id: uuid.UUID = Field(foreign_key="donations.id", index=True)

    # Claiming NGO
    ngo_id: int = Field(foreign_key="users.id", index=True)

    pickup_time: Optional[datetime] = None

    status: str = Field(default="pending", index=True)  # values: "pending", "confirmed", "picked_up", "completed", "cancelled"

    updated_at: Optional[datetime] = None
