#!/usr/bin/env python3
"""
Seed the first organization owner.

Reads OWNER_EMAIL, OWNER_PASSWORD and ORG_NAME from .env file.
Run from project root: python scripts/seed_team_owner.py
"""

import sys
import os

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

# Load .env file
from dotenv import load_dotenv
load_dotenv(os.path.join(project_root, ".env"))

from src.db import supabase


def main():
    email = os.getenv("OWNER_EMAIL")
    password = os.getenv("OWNER_PASSWORD")
    org_name = os.getenv("ORG_NAME", "Studio")

    if not email or not password:
        print("Error: OWNER_EMAIL and OWNER_PASSWORD must be set in .env")
        sys.exit(1)

    # app_metadata.role is the fast-path hint; team_members stays authoritative
    created = supabase.auth.admin.create_user({
        "email": email,
        "password": password,
        "email_confirm": True,
        "app_metadata": {"role": "owner"},
    })
    user = created.user
    if user is None:
        print("Error: Failed to create owner account")
        sys.exit(1)

    org = supabase.table("organizations").insert({"name": org_name}).execute()
    if not org.data:
        print("Error: Failed to create organization")
        sys.exit(1)
    org_id = org.data[0]["id"]

    supabase.table("team_members").upsert(
        {"org_id": org_id, "user_id": user.id, "role": "owner"},
        on_conflict="org_id,user_id",
    ).execute()

    print(f"Created owner:")
    print(f"  User ID: {user.id}")
    print(f"  Email: {email}")
    print(f"  Org ID: {org_id}")


if __name__ == "__main__":
    main()
