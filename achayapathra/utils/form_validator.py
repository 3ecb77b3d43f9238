from datetime import datetime, timedelta, timezone
from typing import Literal, Optional
from fastapi import HTTPException
from pydantic import BaseModel, Field, ValidationError, model_validator

# Tolerated clock skew between donor devices and the server
PREPARATION_SKEW = timedelta(minutes=5)


class ValidatedCreateDonation(BaseModel):
    title: str = Field(min_length=3, max_length=60)
    description: str = Field(default="", max_length=500)
    food_category: Literal["vegetarian", "non-vegetarian"]
    quantity: int = Field(ge=1)
    unit: str = Field(default="plates", min_length=1, max_length=20)
    preparation_time: datetime
    storage_condition: Literal[
        "refrigerated",
        "room temperature",
        "covered",
        "uncovered",
    ]
    location: str = Field(min_length=3, max_length=120)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    hygiene_checked: bool

    @model_validator(mode="after")
    def check_consistency(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")

        if not self.hygiene_checked:
            raise ValueError("Hygiene checklist must be completed")

        if to_utc(self.preparation_time) > datetime.now(timezone.utc) + PREPARATION_SKEW:
            raise ValueError("Preparation time cannot be in the future")

        return self


def to_utc(value: datetime) -> datetime:
    # naive values are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        raise HTTPException(status_code=400, detail="Date not parseable")

    return to_utc(parsed)


def validate_create_donation_form(
    title: str,
    description: str,
    food_category: str,
    quantity: int,
    unit: str,
    preparation_time: str,
    storage_condition: str,
    location: str,
    latitude: Optional[float],
    longitude: Optional[float],
    hygiene_checked: bool,
) -> ValidatedCreateDonation:
    parsed_time = parse_timestamp(preparation_time)

    try:
        return ValidatedCreateDonation(
            title=title.strip(),
            description=description.strip(),
            food_category=food_category,
            quantity=quantity,
            unit=unit.strip(),
            preparation_time=parsed_time,
            storage_condition=storage_condition.strip().lower(),
            location=location.strip(),
            latitude=latitude,
            longitude=longitude,
            hygiene_checked=hygiene_checked,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )
