"""
Seed Reference Data — event names, country renewal parameters, renewal rules.

Usage:
    python scripts/seed_reference_data.py                  # Uses development DB
    python scripts/seed_reference_data.py --env production # Uses production DB

This script is idempotent — safe to run multiple times.
"""

import argparse
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from app.models import db
from app.services.reference_data import seed_reference_data


def main():
    parser = argparse.ArgumentParser(description="Seed docket reference data")
    parser.add_argument("--env", default="development",
                        choices=["development", "testing", "production"])
    args = parser.parse_args()

    app = create_app(args.env)
    with app.app_context():
        counts = seed_reference_data()
        db.session.commit()
        print(f"Seeded: {counts}")


if __name__ == "__main__":
    main()
