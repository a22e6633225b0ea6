#!/usr/bin/env python
"""
Seed script to populate the database with sample data for local development.

Usage:
    python scripts/seed_data.py --homeowners 5 --renters 2
"""

import argparse
import sys
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.config import Base, SessionLocal, engine  # noqa: E402
from backend.core.clock import utcnow  # noqa: E402
from backend.models.models import Poll, Resident  # noqa: E402
from backend.services import polls as poll_service  # noqa: E402
from backend.services import residents as resident_service  # noqa: E402

SEED_PASSWORD = "changeme123"


def create_board_member(session) -> Resident:
    board = resident_service.get_resident_by_email(session, "board@example.com")
    if board:
        return board
    return resident_service.create_resident(
        session,
        first_name="Board",
        last_name="Member",
        email="board@example.com",
        address="1 Community Way",
        is_board_member=True,
        password=SEED_PASSWORD,
    )


def create_resident_account(session, index: int, renter: bool) -> Resident:
    kind = "renter" if renter else "owner"
    email = f"{kind}{index}@example.com"
    existing = resident_service.get_resident_by_email(session, email)
    if existing:
        return existing
    return resident_service.create_resident(
        session,
        first_name=f"Test {kind.title()}",
        last_name=str(index),
        email=email,
        address=f"{100 + index} Community Way",
        unit_number=f"{index:03d}",
        is_renter=renter,
        password=SEED_PASSWORD,
    )


def create_sample_poll(session, board: Resident) -> None:
    if session.query(Poll).count():
        return
    poll_service.create_poll(
        session,
        title="Pool opening date",
        description="When should the community pool open this season?",
        category="amenities",
        options=["Memorial Day", "First week of June", "Mid June"],
        expires_at=utcnow() + timedelta(days=14),
        created_by=str(board.id),
    )


def seed_database(homeowners: int, renters: int) -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        board = create_board_member(session)
        for index in range(1, max(homeowners, 0) + 1):
            create_resident_account(session, index, renter=False)
        for index in range(1, max(renters, 0) + 1):
            create_resident_account(session, index, renter=True)
        create_sample_poll(session, board)
        session.commit()
        print(
            f"Seed complete. {homeowners} homeowner and {renters} renter accounts "
            f"(password: '{SEED_PASSWORD}')."
        )


def main():
    parser = argparse.ArgumentParser(description="Seed the community portal database with sample data.")
    parser.add_argument("--homeowners", type=int, default=5, help="Number of homeowner accounts to create")
    parser.add_argument("--renters", type=int, default=2, help="Number of renter accounts to create")
    args = parser.parse_args()
    seed_database(args.homeowners, args.renters)


if __name__ == "__main__":
    main()
