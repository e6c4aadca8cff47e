#!/usr/bin/env python3
"""
Seed the portal database with an administrator and a sample teacher.

Existing accounts are left untouched, so the script can be re-run safely.

Usage:
    python scripts/setup_admin.py

Environment:
    MONGODB_URI must point at the database the API uses
    ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_NAME override the seeded admin
"""

import os
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from portal.core.config import settings
from portal.domain.user import RegisterRequest, Role
from portal.infrastructure.store import create_store
from portal.infrastructure.uploads import UploadStorage
from portal.services.registry import build_services


SEED_ACCOUNTS = [
    RegisterRequest(
        name=os.getenv("ADMIN_NAME", "Administrator"),
        email=os.getenv("ADMIN_EMAIL", "admin@school.com"),
        password=os.getenv("ADMIN_PASSWORD", "admin12345"),
        role=Role.ADMIN,
    ),
    RegisterRequest(
        name="Sample Teacher",
        email="teacher@school.com",
        password="123456",
        role=Role.TEACHER,
    ),
]


def seed(users) -> int:
    """Create missing seed accounts. Returns how many were created."""
    created = 0
    for account in SEED_ACCOUNTS:
        if users.get_record_by_email(account.email) is not None:
            print(f"[OK] {account.role.value} '{account.email}' already exists")
            continue
        users.create(account)
        created += 1
        print(f"[OK] Created {account.role.value} '{account.email}'")
    return created


def main():
    """Main execution function."""
    print("=" * 60)
    print("School Portal - Account Setup")
    print("=" * 60)
    print(f"\nDatabase: {settings.database_name}")
    print()

    if settings.uses_memory_store:
        print("[ERROR] MONGODB_URI is not set; seeding the in-memory store has no effect")
        sys.exit(1)

    store = create_store(settings)
    if not store.ping():
        print("[ERROR] Cannot reach MongoDB")
        sys.exit(1)

    services = build_services(store, UploadStorage.from_settings(settings), settings)
    created = seed(services.users)
    print(f"\n[DONE] {created} account(s) created")


if __name__ == "__main__":
    main()
