"""Create or update a profile's password and role for local development.

The first admin has to be created this way; later admins are invited.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``handykonnect`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from handykonnect import create_app
from handykonnect.extensions import db
from handykonnect.models import ROLES, Profile


def set_password(email: str, password: str, role: str = "client", full_name: str | None = None) -> None:
    app = create_app()
    email = email.strip().lower()

    with app.app_context():
        profile = Profile.query.filter_by(email=email).first()
        if profile is None:
            profile = Profile(full_name=full_name or f"{role.title()} User", email=email, role=role)
            db.session.add(profile)
            print(f"Created new {role} profile: {email}")
        elif profile.role != role:
            print(f"Updating profile role from '{profile.role}' to '{role}'")
            profile.role = role

        profile.password_hash = generate_password_hash(password)
        db.session.commit()

        print(f"Password for {role} profile '{email}' has been set successfully.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Set a profile password for local testing.")
    parser.add_argument("email", help="Profile email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument("--role", choices=ROLES, default="client", help="Profile role (default: client)")
    parser.add_argument("--name", dest="full_name", help="Full name for a newly created profile")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    set_password(args.email, args.password, args.role, args.full_name)


if __name__ == "__main__":
    main()
