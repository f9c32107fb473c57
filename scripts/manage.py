#!/usr/bin/env python3
"""Management helpers for a Pawboard deployment."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, Iterable, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlmodel import select

from pawboard import database
from pawboard.auth import AuthError, build_auth_service, init_auth_storage
from pawboard.auth.credentials import normalize_email
from pawboard.auth.models import CurrentUser, User
from pawboard.auth.service import record_audit_event
from pawboard.config import settings
from pawboard.listings import AnimalType, ListingStatus, create_listing

SAMPLE_LISTINGS: List[Dict[str, object]] = [
    {
        "title": "Lost dog near Retiro park",
        "description": "Brown mixed breed with a red collar, answers to Toby.",
        "animal_type": AnimalType.DOG,
        "status": ListingStatus.LOST,
        "city": "Madrid",
        "latitude": 40.415,
        "longitude": -3.684,
    },
    {
        "title": "Cat found in Gracia",
        "description": "Grey tabby, very friendly, no microchip found.",
        "animal_type": AnimalType.CAT,
        "status": ListingStatus.FOUND,
        "city": "Barcelona",
        "latitude": 41.406,
        "longitude": 2.157,
    },
    {
        "title": "Parrot spotted in the trees",
        "description": "Green parrot flying between the trees by the river.",
        "animal_type": AnimalType.BIRD,
        "status": ListingStatus.LOST,
        "city": "Madrid",
        "latitude": 40.431,
        "longitude": -3.703,
    },
]


def _log_system_event(action: str, summary: str, data: Dict[str, object] | None = None) -> None:
    with database.SessionLocal() as session:
        record_audit_event(
            session,
            actor_id=None,
            action=action,
            summary=summary,
            data=data or {},
            commit=True,
        )


def _find_user(email: str) -> User | None:
    with database.SessionLocal() as session:
        return session.exec(select(User).where(User.email == normalize_email(email))).first()


def _command_create_user(args: argparse.Namespace) -> int:
    auth = build_auth_service(settings)
    init_auth_storage(auth)
    try:
        issued = auth.register(args.email, args.password)
    except AuthError as exc:
        print(f"Could not create '{normalize_email(args.email)}': {exc.public_message}")
        return 1
    # The CLI has no browser to hand the session to.
    auth.logout(issued.id)
    _log_system_event(
        "user_created_cli",
        f"Created user {normalize_email(args.email)}",
        {"user_id": issued.user_id},
    )
    print(f"Created user '{normalize_email(args.email)}' (id={issued.user_id})")
    return 0


def _command_prune_sessions(args: argparse.Namespace) -> int:
    auth = build_auth_service(settings)
    init_auth_storage()
    with database.SessionLocal() as session:
        removed = auth.sessions.delete_expired(session)
    print(f"Removed {removed} expired sessions")
    return 0


def _command_revoke_sessions(args: argparse.Namespace) -> int:
    auth = build_auth_service(settings)
    init_auth_storage()
    user = _find_user(args.email)
    if user is None:
        print(f"No user '{normalize_email(args.email)}'")
        return 1
    with database.SessionLocal() as session:
        removed = auth.sessions.invalidate_user_sessions(session, user.id)
    _log_system_event(
        "sessions_revoked",
        f"Revoked sessions for {user.email}",
        {"user_id": user.id, "count": removed},
    )
    print(f"Revoked {removed} sessions for '{user.email}'")
    return 0


def _command_seed_sample_listings(args: argparse.Namespace) -> int:
    init_auth_storage()
    user = _find_user(args.owner)
    if user is None:
        print(f"No user '{normalize_email(args.owner)}'; create it first")
        return 1
    owner = CurrentUser.from_user(user)
    with database.SessionLocal() as session:
        for entry in SAMPLE_LISTINGS:
            create_listing(session, owner, **entry)
    _log_system_event(
        "sample_listings_seeded",
        f"Seeded {len(SAMPLE_LISTINGS)} listings for {owner.email}",
        {"user_id": owner.id},
    )
    print(f"Created {len(SAMPLE_LISTINGS)} sample listings for '{owner.email}'")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--database-url",
        dest="database_url",
        help="Override the database URL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_user = subparsers.add_parser(
        "create-user", help="Register an account with the normal registration policy",
    )
    create_user.add_argument("--email", required=True)
    create_user.add_argument("--password", required=True)
    create_user.set_defaults(func=_command_create_user)

    prune = subparsers.add_parser("prune-sessions", help="Delete expired sessions")
    prune.set_defaults(func=_command_prune_sessions)

    revoke = subparsers.add_parser(
        "revoke-sessions", help="Sign a user out of every device",
    )
    revoke.add_argument("--email", required=True)
    revoke.set_defaults(func=_command_revoke_sessions)

    seed = subparsers.add_parser(
        "seed-sample-listings", help="Create demo listings owned by an existing user",
    )
    seed.add_argument("--owner", required=True, help="Email of the owning user")
    seed.set_defaults(func=_command_seed_sample_listings)

    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.database_url:
        database.reset_session_factory(args.database_url)

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1

    return handler(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
