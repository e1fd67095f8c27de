#!/usr/bin/env python3
"""Create an administrator account, or promote an existing one.

Usage:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD='Secret123!' python scripts/bootstrap_admin.py

    python scripts/bootstrap_admin.py --email admin@example.com --password 'Secret123!' --name "Store Admin"

Environment Variables:
    ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_NAME
    DATABASE_URL: defaults to the local SQLite file used by the API
"""
import argparse
import os
import sys


def bootstrap_admin(email: str, password: str, name: str, dry_run: bool = False) -> dict:
    # imported late so --help works without a configured environment
    from plantstore.auth.services import create_user, get_user_by_email
    from plantstore.database import Base, SessionLocal, engine
    from plantstore.models import UserRole

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user = get_user_by_email(db, email)
        if user is not None:
            if user.is_admin:
                return {"user_id": user.id, "email": user.email, "status": "already_admin"}
            if dry_run:
                return {"user_id": user.id, "email": user.email, "status": "dry_run"}
            user.role = UserRole.ADMIN
            user.is_verified = True
            db.commit()
            return {"user_id": user.id, "email": user.email, "status": "promoted"}

        if dry_run:
            return {"user_id": None, "email": email, "status": "dry_run"}
        user = create_user(db, name, email, password, role=UserRole.ADMIN)
        user.is_verified = True
        db.commit()
        return {"user_id": user.id, "email": user.email, "status": "created"}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="Bootstrap an admin user for the plant store API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--email", default=os.environ.get("ADMIN_EMAIL"), help="Admin email (or ADMIN_EMAIL)")
    parser.add_argument("--password", default=os.environ.get("ADMIN_PASSWORD"), help="Admin password (or ADMIN_PASSWORD)")
    parser.add_argument("--name", default=os.environ.get("ADMIN_NAME", "Administrator"), help="Display name")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be done without making changes")
    args = parser.parse_args()

    if not args.email:
        print("Error: --email or ADMIN_EMAIL environment variable required")
        sys.exit(1)
    if not args.password:
        print("Error: --password or ADMIN_PASSWORD environment variable required")
        sys.exit(1)

    from plantstore.exceptions import AppError

    try:
        result = bootstrap_admin(args.email, args.password, args.name, args.dry_run)
    except AppError as e:
        print(f"Error: {e.message}")
        sys.exit(1)

    messages = {
        "created": "Admin user created",
        "promoted": "Existing user promoted to admin",
        "already_admin": "No changes needed - user is already an admin",
        "dry_run": "[DRY RUN] No changes made",
    }
    print(f"{messages[result['status']]}: {result['email']} (id: {result['user_id']})")


if __name__ == "__main__":
    main()
