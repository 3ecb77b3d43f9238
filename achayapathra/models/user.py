from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    name: str
    email: str

    role: str = Field(default="donor")  # Possible roles: donor, ngo, admin
    organization: Optional[str] = Field(default=None)
    phone: Optional[str] = Field(default=None)
    address: Optional[str] = Field(default=None)

    # Default search origin for NGOs
    latitude: Optional[float] = Field(default=None)
    longitude: Optional[float] = Field(default=None)
