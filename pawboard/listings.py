"""Lost and found listings owned by registered users."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, DateTime, Enum as SAEnum, String, Text
from sqlalchemy.sql import func
from sqlmodel import Field, Session, SQLModel, select

from .auth.models import CurrentUser


class AnimalType(str, Enum):
    DOG = "DOG"
    CAT = "CAT"
    BIRD = "BIRD"
    REPTILE = "REPTILE"
    RABBIT = "RABBIT"
    OTHER = "OTHER"


class ListingStatus(str, Enum):
    LOST = "LOST"
    FOUND = "FOUND"
    RESOLVED = "RESOLVED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Listing(SQLModel, table=True):
    __tablename__ = "listings"

    id: Optional[int] = Field(default=None, primary_key=True)
    # Set from the caller at creation time and never reassigned.
    owner_id: str = Field(foreign_key="users.id", index=True, nullable=False)
    title: str = Field(sa_column=Column(String(120), nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    animal_type: AnimalType = Field(
        sa_column=Column(SAEnum(AnimalType, name="animal_type"), nullable=False)
    )
    status: ListingStatus = Field(
        sa_column=Column(SAEnum(ListingStatus, name="listing_status"), nullable=False)
    )
    city: Optional[str] = Field(default=None, sa_column=Column(String(120), nullable=True))
    photo_url: Optional[str] = Field(
        default=None, sa_column=Column(String(500), nullable=True)
    )
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=func.now()),
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        ),
    )


MUTABLE_FIELDS = (
    "title",
    "description",
    "animal_type",
    "status",
    "city",
    "photo_url",
    "latitude",
    "longitude",
)


def list_listings(
    session: Session,
    *,
    status: Optional[ListingStatus] = None,
    animal_type: Optional[AnimalType] = None,
    city: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> List[Listing]:
    statement = select(Listing)
    if status is not None:
        statement = statement.where(Listing.status == status)
    if animal_type is not None:
        statement = statement.where(Listing.animal_type == animal_type)
    if city:
        statement = statement.where(func.lower(Listing.city) == city.strip().lower())
    if owner_id is not None:
        statement = statement.where(Listing.owner_id == owner_id)
    statement = statement.order_by(Listing.created_at.desc(), Listing.id.desc())
    return list(session.exec(statement).all())


def get_listing(session: Session, listing_id: int) -> Optional[Listing]:
    return session.get(Listing, listing_id)


def create_listing(session: Session, owner: CurrentUser, **fields) -> Listing:
    """Persist a listing attributed to ``owner``."""

    values = {key: fields[key] for key in MUTABLE_FIELDS if key in fields}
    listing = Listing(owner_id=owner.id, **values)
    session.add(listing)
    session.commit()
    session.refresh(listing)
    return listing


def update_listing(session: Session, listing: Listing, **changes) -> Listing:
    """Apply ``changes`` to ``listing``; ownership cannot be changed here."""

    for key, value in changes.items():
        if key not in MUTABLE_FIELDS:
            raise ValueError(f"{key} cannot be updated")
        setattr(listing, key, value)
    listing.updated_at = _utcnow()
    session.add(listing)
    session.commit()
    session.refresh(listing)
    return listing


def delete_listing(session: Session, listing: Listing) -> None:
    session.delete(listing)
    session.commit()


__all__ = [
    "AnimalType",
    "Listing",
    "ListingStatus",
    "create_listing",
    "delete_listing",
    "get_listing",
    "list_listings",
    "update_listing",
]
