from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Donation(SQLModel, table=True):
    __tablename__ = "donations"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Donor info
    donor_id: int = Field(foreign_key="users.id", index=True)

    # Food fields
    title: str
    description: str = Field(default="")
    food_category: str  # "vegetarian" or "non-vegetarian"
    quantity: int
    unit: str = Field(default="plates")
    storage_condition: str  # refrigerated/room temperature/covered/uncovered
    preparation_time: datetime
    image: Optional[str] = Field(default=None)

    # Pickup location
    location: str
    latitude: Optional[float] = Field(default=None)
    longitude: Optional[float] = Field(default=None)

    # Lifecycle
    status: str = Field(default="pending", index=True)  # pending/approved/rejected/assessment_failed/claimed/completed

    # Safety assessment, written once
    safety_score: Optional[int] = Field(default=None)
    safety_status: Optional[str] = Field(default=None)
    safety_confidence: Optional[float] = Field(default=None)
    safety_explanation: Optional[str] = Field(default=None)
    assessed_at: Optional[datetime] = Field(default=None)
    assessment_error: Optional[str] = Field(default=None)

    # Image signals behind the assessment
    image_quality: Optional[float] = Field(default=None)
    discoloration_detected: Optional[bool] = Field(default=None)
    moisture_level: Optional[float] = Field(default=None)
    texture_score: Optional[float] = Field(default=None)
