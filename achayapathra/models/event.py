from typing import Optional
import uuid
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone

class DonationEvent(SQLModel, table=True):
    __tablename__ = "donation_events"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    type: str = Field(index=True) # values: "new_donation", "donation_claimed"

    payload: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    donation_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="donations.id",
        index=True
    )

    # Set by the dispatch collaborator once delivered
    dispatched_at: Optional[datetime] = Field(default=None, index=True)
