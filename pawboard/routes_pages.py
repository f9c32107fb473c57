import logging
import re
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ValidationError, field_validator, model_validator
from sqlmodel import Session

from . import listings
from .auth.dependencies import get_auth_service, get_caller
from .auth.errors import (
    Forbidden,
    InvalidCredentials,
    RegistrationError,
    TooManyAttempts,
    TransientStoreFailure,
)
from .auth.guard import authorize
from .auth.models import CurrentUser
from .auth.service import AuthService
from .auth.transport import clear_session_cookie, read_session_id, set_session_cookie
from .config import settings
from .database import get_session


router = APIRouter()
TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DASHBOARD_PATH = "/dashboard"


class RegisterForm(BaseModel):
    """Presentation-level checks run before the account service is called."""

    email: str
    password: str
    confirm_password: str
    accept: str = ""

    @field_validator("email")
    @classmethod
    def _clean_email(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if not cleaned:
            raise ValueError("Email required")
        if len(cleaned) > 254:
            raise ValueError("Email too long")
        if not EMAIL_PATTERN.match(cleaned):
            raise ValueError("Invalid email")
        return cleaned

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        if len(value) < settings.PASSWORD_MIN_LENGTH:
            raise ValueError(
                f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters"
            )
        if len(value.encode("utf-8")) > settings.PASSWORD_MAX_BYTES:
            raise ValueError("Password too long")
        if not re.search(r"[a-z]", value):
            raise ValueError("Password must contain a lowercase letter")
        if not re.search(r"[A-Z]", value):
            raise ValueError("Password must contain an uppercase letter")
        if not re.search(r"[0-9]", value):
            raise ValueError("Password must contain a number")
        if not re.search(r"[^A-Za-z0-9]", value):
            raise ValueError("Password must contain a symbol")
        return value

    @model_validator(mode="after")
    def _check_confirmation(self) -> "RegisterForm":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        if self.accept != "on":
            raise ValueError("You must accept the terms and privacy policy")
        return self


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid data"
    message = str(errors[0].get("msg") or "Invalid data")
    return message.removeprefix("Value error, ")


def _redirect_with_error(path: str, message: str) -> RedirectResponse:
    return RedirectResponse(f"{path}?error={quote(message)}", status_code=303)


def _client_host(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _require_page_caller(caller: Optional[CurrentUser] = Depends(get_caller)) -> CurrentUser:
    if caller is None:
        raise HTTPException(
            status.HTTP_303_SEE_OTHER,
            headers={"Location": "/login"},
        )
    return caller


@router.get("/", include_in_schema=False)
def root(caller: Optional[CurrentUser] = Depends(get_caller)):
    target = DASHBOARD_PATH if caller else "/login"
    return RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/login", response_class=HTMLResponse)
def login_page(
    request: Request,
    error: Optional[str] = None,
    caller: Optional[CurrentUser] = Depends(get_caller),
):
    if caller:
        return RedirectResponse(DASHBOARD_PATH, status_code=303)
    return templates.TemplateResponse(
        request,
        "login.html",
        {"request": request, "title": "Sign in", "error": error},
    )


@router.post("/login", response_class=HTMLResponse)
def login_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    auth: AuthService = Depends(get_auth_service),
):
    try:
        issued = auth.login(email, password, client=_client_host(request))
    except TooManyAttempts as exc:
        response = templates.TemplateResponse(
            request,
            "login.html",
            {"request": request, "title": "Sign in", "error": exc.public_message},
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            headers={"Retry-After": str(exc.retry_after)},
        )
        clear_session_cookie(response, request=request)
        return response
    except (InvalidCredentials, TransientStoreFailure) as exc:
        response = _redirect_with_error("/login", exc.public_message)
        clear_session_cookie(response, request=request)
        return response

    redirect = RedirectResponse(DASHBOARD_PATH, status_code=303)
    set_session_cookie(redirect, issued, request=request)
    return redirect


@router.get("/register", response_class=HTMLResponse)
def register_page(
    request: Request,
    error: Optional[str] = None,
    caller: Optional[CurrentUser] = Depends(get_caller),
):
    if caller:
        return RedirectResponse(DASHBOARD_PATH, status_code=303)
    return templates.TemplateResponse(
        request,
        "register.html",
        {"request": request, "title": "Create account", "error": error},
    )


@router.post("/register")
def register_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    confirm_password: str = Form(""),
    accept: str = Form(""),
    auth: AuthService = Depends(get_auth_service),
):
    try:
        form = RegisterForm(
            email=email,
            password=password,
            confirm_password=confirm_password,
            accept=accept,
        )
    except ValidationError as exc:
        return _redirect_with_error("/register", _first_error(exc))

    try:
        issued = auth.register(form.email, form.password, client=_client_host(request))
    except (RegistrationError, TransientStoreFailure) as exc:
        logger.info("Registration failed: %s", exc.__class__.__name__)
        message = exc.public_message
        if isinstance(exc, TransientStoreFailure):
            message = "Registration unavailable, try again shortly"
        return _redirect_with_error("/register", message)

    redirect = RedirectResponse(DASHBOARD_PATH, status_code=303)
    set_session_cookie(redirect, issued, request=request)
    return redirect


@router.get("/logout")
def logout(request: Request, auth: AuthService = Depends(get_auth_service)):
    auth.logout(read_session_id(request), client=_client_host(request))
    response = RedirectResponse(url="/login", status_code=303)
    clear_session_cookie(response, request=request)
    return response


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(
    request: Request,
    current_user: CurrentUser = Depends(_require_page_caller),
    session: Session = Depends(get_session),
):
    own = listings.list_listings(session, owner_id=current_user.id)
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "request": request,
            "title": "Dashboard",
            "current_user": current_user,
            "listings": own,
            "logout_url": "/logout",
        },
    )


@router.post("/dashboard/listings/{listing_id}/delete")
def dashboard_delete_listing(
    listing_id: int,
    caller: Optional[CurrentUser] = Depends(get_caller),
    session: Session = Depends(get_session),
):
    if caller is None:
        return RedirectResponse("/login", status_code=303)
    listing = listings.get_listing(session, listing_id)
    decision = authorize(caller, listing.owner_id if listing is not None else None)
    if not decision.allowed:
        logger.warning("Denied dashboard delete of listing %s for %s", listing_id, caller.id)
        return _redirect_with_error(DASHBOARD_PATH, Forbidden.public_message)
    listings.delete_listing(session, listing)
    return RedirectResponse(DASHBOARD_PATH, status_code=303)


__all__ = ["router"]
