#!/usr/bin/env python3
"""Persist the annual HOA fee for every homeowner for a given year."""

from __future__ import annotations

import argparse
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.config import SessionLocal, settings  # noqa: E402
from backend.core.clock import utcnow  # noqa: E402
from backend.core.logging import configure_logging  # noqa: E402
from backend.services.fees import create_year_fees_for_all_homeowners  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--year", type=int, default=utcnow().year)
    parser.add_argument("--amount", type=Decimal, default=None, help="Defaults to ANNUAL_FEE_AMOUNT")
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        help="Skip homeowners that already carry this year's fee (safe to re-run)",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level, settings.log_format)
    with SessionLocal() as session:
        result = create_year_fees_for_all_homeowners(
            session,
            year=args.year,
            amount=args.amount,
            skip_existing=args.skip_existing,
        )
    if result["count"]:
        print(f"Created {result['count']} annual fees for {result['year']} totalling {result['total_amount']}.")
    else:
        print(f"No annual fees created for {result['year']}.")


if __name__ == "__main__":
    main()
