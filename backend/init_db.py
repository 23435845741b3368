#!/usr/bin/env python3
# backend/init_db.py
"""
Database initialization script.

Creates all tables. With --with-admin it also creates an ADMIN user and
prints that user's gateway API key (shown once, only the hash is stored).

    python backend/init_db.py
    python backend/init_db.py --with-admin
"""
import sys
from pathlib import Path

# Add the backend directory to Python path so 'quotehub' package is importable
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from quotehub.config import settings
from quotehub.database import SessionLocal, engine
from quotehub.models import Base, Role, User
from quotehub.services.api_key_service import ApiKeyService


def init_db() -> None:
    """Create all database tables defined in models."""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("Tables created successfully!")


def create_admin() -> str:
    """Create an ADMIN user and return its plain API key."""
    with SessionLocal() as db:
        user = User(role=Role.ADMIN)
        db.add(user)
        db.commit()
        db.refresh(user)

        return ApiKeyService(salt=settings.api_key_salt).create(db, user.id)


if __name__ == "__main__":
    init_db()

    if "--with-admin" in sys.argv[1:]:
        api_key = create_admin()
        print(f"Admin API key: {api_key}")
