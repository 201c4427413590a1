"""
Startup diagnostics — runs once when the Flask app starts.

Checks critical dependencies and logs a summary banner.
"""

import logging
import os
import sys

import redis
from flask import Flask
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from po_tracker.models import db

logger = logging.getLogger(__name__)


def _redis_status(redis_url: str, issues: list[str]) -> str:
    if not redis_url or not redis_url.startswith(("redis://", "rediss://")):
        return "not configured (in-memory rate limits)"
    try:
        redis.from_url(redis_url, socket_timeout=2).ping()
        return "ok"
    except redis.RedisError:
        issues.append("Redis unreachable — rate limiter storage will fail")
        return "unreachable"


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except SQLAlchemyError as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        try:
            table_count = len(sa_inspect(db.engine).get_table_names())
            if table_count == 0:
                issues.append("No tables found — run 'flask db upgrade'")
        except SQLAlchemyError:
            table_count = "?"

        # ── Upload folder ────────────────────────────────────────────
        upload_folder = app.config.get("UPLOAD_FOLDER", "")
        try:
            os.makedirs(upload_folder, exist_ok=True)
            uploads = "ok" if os.access(upload_folder, os.W_OK) else "READ ONLY"
        except OSError as exc:
            uploads = "FAILED"
            issues.append(f"Upload folder unusable: {exc}")
        if uploads == "READ ONLY":
            issues.append(f"Upload folder {upload_folder} is not writable")

        redis_status = _redis_status(app.config.get("REDIS_URL", ""), issues)

        if not app.config.get("JWT_SECRET_KEY"):
            issues.append("JWT_SECRET_KEY not set — tokens are signed with SECRET_KEY")

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  PO Tracker — Startup Diagnostics                            ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Tables      : {str(table_count):<46s}║
║  Uploads     : {uploads:<46s}║
║  Redis       : {redis_status:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
