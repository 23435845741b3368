# backend/quotehub/services/api_key_service.py
"""
API keys for gateway access.

Keys are random tokens shown once on creation. Only a salted
PBKDF2-SHA256 hash is stored, so a key is looked up by hashing the
presented value with the same salt and comparing hashes.
"""

import hashlib
import logging
import secrets

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from quotehub.models import ApiKey, User

logger = logging.getLogger(__name__)

HASH_ITERATIONS = 100_000


class ApiKeyService:

    def __init__(self, salt: str) -> None:
        self._salt = salt.encode("utf-8")

    def hash_api_key(self, api_key: str) -> str:
        return hashlib.pbkdf2_hmac(
            "sha256",
            api_key.encode("utf-8"),
            self._salt,
            HASH_ITERATIONS,
        ).hex()

    def create(self, db: Session, user_id: int) -> str:
        """
        Issue a new key for the user, revoking any previous one.

        Returns:
            The plain API key (not retrievable later)
        """
        api_key = secrets.token_hex(32)

        db.execute(delete(ApiKey).where(ApiKey.user_id == user_id))
        db.add(ApiKey(user_id=user_id, hashed_key=self.hash_api_key(api_key)))
        db.commit()

        logger.info(f"API key created for user {user_id}")
        return api_key

    def get_user_by_api_key(self, db: Session, api_key: str) -> User | None:
        if not api_key:
            return None

        stmt = (
            select(User)
            .join(ApiKey, ApiKey.user_id == User.id)
            .where(ApiKey.hashed_key == self.hash_api_key(api_key))
        )
        return db.scalars(stmt).first()
