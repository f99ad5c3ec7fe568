"""
Startup diagnostics — runs once when the Flask app starts.

Checks the database and the reference data the rule engine depends on,
then logs a summary banner.
"""

import logging
import sys

from flask import Flask

from app.models import db

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        # ── Python version ───────────────────────────────────────────
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except Exception as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        # ── Reference data ───────────────────────────────────────────
        countries = rules = "?"
        if db_status == "ok":
            from app.models.reference import Country
            from app.models.task import TaskRule

            try:
                countries = Country.query.count()
                rules = TaskRule.query.filter_by(active=True).count()
                if countries == 0:
                    issues.append("No countries loaded — run 'flask seed-reference-data'")
            except Exception as exc:
                issues.append(f"Reference tables not readable — run 'flask db upgrade' ({exc})")
            finally:
                db.session.rollback()

        renewal_fee = app.config.get("RENEWAL_DEFAULT_FEE")

        # ── Banner ───────────────────────────────────────────────────
        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  IP Docket — Startup Diagnostics                             ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Countries   : {str(countries):<46s}║
║  Task rules  : {str(rules):<46s}║
║  Default fee : {str(renewal_fee):<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
