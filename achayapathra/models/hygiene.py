import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class HygieneChecklist(SQLModel, table=True):
    __tablename__ = "hygiene_checklists"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    donation_id: uuid.UUID = Field(foreign_key="donations.id", index=True, unique=True)

    # Donor confirmations at submission time
    cooked_safe_time: bool
    stored_covered: bool
    no_human_contact: bool
