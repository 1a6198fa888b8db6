#!/usr/bin/env python3
"""
Database Initialization Script for CampusPerks

This script:
1. Creates any missing tables
2. Optionally seeds the first admin account

Usage:
    python -m app.scripts.init_db                      # Create tables
    python -m app.scripts.init_db --check              # Only check connectivity
    python -m app.scripts.init_db --admin-email a@b.c --admin-password secret123
"""

import argparse
import asyncio
import sys
from typing import Optional

from sqlalchemy import text

from app.core.database import close_db, get_session_local, init_db, session_scope
from app.core.logging_config import logger
from app.models.account import AccountRole, ApprovalStatus, VerificationStatus
from app.services.account_store import AccountStore
from app.core.security import get_password_hash


async def check_connection() -> bool:
    """Test database connectivity"""
    try:
        async with get_session_local()() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"[InitDB] Database connection failed: {e}")
        return False
    logger.info("[InitDB] Database connection successful")
    return True


async def seed_admin(email: str, password: str, name: str, department: Optional[str] = None) -> bool:
    """Create the first admin; does nothing when the email already exists"""
    async with session_scope() as session:
        store = AccountStore(session)
        if await store.find_roles_for_email(email):
            logger.info(f"[InitDB] Account {email} already exists, skipping admin seed")
            return False
        await store.create(
            AccountRole.ADMIN,
            name=name,
            email=email,
            hashed_password=get_password_hash(password),
            department=department,
            approval_status=ApprovalStatus.APPROVED,
            verification_status=VerificationStatus.VERIFIED,
            is_verified=True,
        )
    logger.info(f"[InitDB] Admin {email} created")
    return True


async def run(args: argparse.Namespace) -> int:
    try:
        if not await check_connection():
            return 1
        if args.check:
            return 0

        await init_db()
        logger.info("[InitDB] Database tables created/verified")

        if args.admin_email:
            if not args.admin_password or len(args.admin_password) < 8:
                logger.error("[InitDB] --admin-password of at least 8 characters is required")
                return 1
            await seed_admin(args.admin_email, args.admin_password, args.admin_name, args.admin_department)
        return 0
    finally:
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Initialize the CampusPerks database")
    parser.add_argument("--check", action="store_true", help="Only check connectivity")
    parser.add_argument("--admin-email", help="Seed an admin account with this email")
    parser.add_argument("--admin-password", help="Password for the seeded admin")
    parser.add_argument("--admin-name", default="Administrator", help="Display name for the seeded admin")
    parser.add_argument("--admin-department", default=None)
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
