from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlmodel import Session

from . import listings
from .auth.dependencies import get_auth_service, get_caller, require_caller
from .auth.errors import TransientStoreFailure, translate_store_errors
from .auth.guard import authorize
from .auth.models import CurrentUser
from .auth.service import AuthService, record_audit_event
from .auth.transport import clear_session_cookie, read_session_id
from .database import get_session
from .listings import AnimalType, Listing, ListingStatus

router = APIRouter(prefix="/api", tags=["api"])
logger = logging.getLogger(__name__)

NOT_PERMITTED = "Not permitted"
REQUIRED_FIELDS = ("title", "description", "animal_type", "status")


class MeResponse(BaseModel):
    id: str
    email: str


class ListingCreateRequest(BaseModel):
    """Payload for publishing a listing."""

    title: str = Field(..., min_length=3, max_length=120)
    description: str = Field(..., min_length=10, max_length=2000)
    animal_type: AnimalType = Field(..., alias="animalType")
    status: ListingStatus
    city: Optional[str] = Field(default=None, max_length=120)
    photo_url: Optional[str] = Field(default=None, alias="photoUrl", max_length=500)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("title", "description")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        return value.strip()

    @field_validator("city", "photo_url")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


class ListingUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their value."""

    title: Optional[str] = Field(default=None, min_length=3, max_length=120)
    description: Optional[str] = Field(default=None, min_length=10, max_length=2000)
    animal_type: Optional[AnimalType] = Field(default=None, alias="animalType")
    status: Optional[ListingStatus] = None
    city: Optional[str] = Field(default=None, max_length=120)
    photo_url: Optional[str] = Field(default=None, alias="photoUrl", max_length=500)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ListingResponse(BaseModel):
    id: int
    owner_id: str = Field(..., alias="ownerId")
    title: str
    description: str
    animal_type: AnimalType = Field(..., alias="animalType")
    status: ListingStatus
    city: Optional[str] = None
    photo_url: Optional[str] = Field(default=None, alias="photoUrl")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


def _serialize(listing: Listing) -> dict:
    return ListingResponse.model_validate(listing).model_dump(by_alias=True, mode="json")


def _load_for_mutation(
    request: Request,
    session: Session,
    listing_id: int,
    caller: Optional[CurrentUser],
    action: str,
) -> Listing:
    """Return the listing when ``caller`` owns it, otherwise stop the request.

    Anonymous callers get ``401`` before any lookup. A missing listing and a
    listing owned by someone else both answer ``403``.
    """

    if caller is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Authentication required")

    listing = listings.get_listing(session, listing_id)
    decision = authorize(caller, listing.owner_id if listing is not None else None)
    if decision.allowed:
        assert listing is not None
        return listing

    logger.warning(
        "Denied %s on listing %s for user %s (%s)",
        action,
        listing_id,
        caller.id,
        "missing" if listing is None else "not owner",
    )
    try:
        with translate_store_errors("denial audit"):
            record_audit_event(
                session,
                actor_id=caller.id,
                action="listing_mutation_denied",
                summary=f"Denied {action} on listing {listing_id}",
                data={
                    "listing_id": listing_id,
                    "exists": listing is not None,
                    "ip": request.client.host if request.client else "unknown",
                },
                commit=True,
            )
    except TransientStoreFailure:
        session.rollback()
        logger.exception("Could not persist denial audit for listing %s", listing_id)
    raise HTTPException(status.HTTP_403_FORBIDDEN, NOT_PERMITTED)


@router.get("/me", response_model=MeResponse)
def me(caller: CurrentUser = Depends(require_caller)) -> MeResponse:
    return MeResponse(id=caller.id, email=caller.email)


@router.post("/logout")
def api_logout(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    client = request.client.host if request.client else None
    auth.logout(read_session_id(request), client=client)
    clear_session_cookie(response, request=request)
    return {"ok": True}


@router.get("/listings")
def list_listings(
    status_filter: Optional[ListingStatus] = Query(default=None, alias="status"),
    animal_type: Optional[AnimalType] = None,
    city: Optional[str] = None,
    session: Session = Depends(get_session),
) -> List[dict]:
    entries = listings.list_listings(
        session, status=status_filter, animal_type=animal_type, city=city
    )
    return [_serialize(entry) for entry in entries]


@router.get("/listings/{listing_id}")
def get_listing(listing_id: int, session: Session = Depends(get_session)) -> dict:
    listing = listings.get_listing(session, listing_id)
    if listing is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Listing not found")
    return _serialize(listing)


@router.post("/listings", status_code=status.HTTP_201_CREATED)
def create_listing(
    payload: ListingCreateRequest,
    caller: CurrentUser = Depends(require_caller),
    session: Session = Depends(get_session),
) -> dict:
    listing = listings.create_listing(session, caller, **payload.model_dump())
    logger.info("User %s created listing %s", caller.id, listing.id)
    return _serialize(listing)


@router.patch("/listings/{listing_id}")
def update_listing(
    listing_id: int,
    payload: ListingUpdateRequest,
    request: Request,
    caller: Optional[CurrentUser] = Depends(get_caller),
    session: Session = Depends(get_session),
) -> dict:
    listing = _load_for_mutation(request, session, listing_id, caller, "update")
    changes = payload.model_dump(exclude_unset=True)
    cleared = [key for key in REQUIRED_FIELDS if key in changes and changes[key] is None]
    if cleared:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            f"{', '.join(cleared)} cannot be empty",
        )
    listing = listings.update_listing(session, listing, **changes)
    return _serialize(listing)


@router.delete("/listings/{listing_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_listing(
    listing_id: int,
    request: Request,
    caller: Optional[CurrentUser] = Depends(get_caller),
    session: Session = Depends(get_session),
) -> Response:
    listing = _load_for_mutation(request, session, listing_id, caller, "delete")
    listings.delete_listing(session, listing)
    logger.info("User %s deleted listing %s", caller.id if caller else None, listing_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
