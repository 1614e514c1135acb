"""Authentication service."""
import hashlib
import hmac
import psycopg2
from psycopg2.extras import RealDictCursor
from typing import Optional
from shared.config import config
from shared.exceptions import StoreUnavailableError
import logging

logger = logging.getLogger(__name__)


def hash_secret(secret: str) -> str:
    """Hash an API key or password (sha256 hex digest)."""
    return hashlib.sha256(secret.encode()).hexdigest()


class AuthService:
    """Service for authenticating vault owners."""

    def __init__(self, database_url: str = None):
        self.database_url = database_url or config.DATABASE_URL

    def _fetch_owner(self, column: str, value: str) -> Optional[dict]:
        try:
            conn = psycopg2.connect(self.database_url)
        except psycopg2.Error as e:
            logger.error(f"Error connecting to database: {e}")
            raise StoreUnavailableError("Owner store unreachable", str(e))
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    SELECT owner_id, name, email, password_hash
                    FROM owners
                    WHERE {column} = %s
                    """,
                    (value,)
                )
                result = cur.fetchone()
                return dict(result) if result else None
        except psycopg2.Error as e:
            logger.error(f"Error looking up owner: {e}")
            raise StoreUnavailableError("Owner lookup failed", str(e))
        finally:
            conn.close()

    def authenticate(self, api_key: str) -> Optional[dict]:
        """Authenticate an API key and return owner information.

        Args:
            api_key: API key to authenticate

        Returns:
            Owner information dict or None if invalid
        """
        owner = self._fetch_owner("api_key_hash", hash_secret(api_key))
        if owner:
            owner.pop("password_hash", None)
            owner["owner_id"] = str(owner["owner_id"])
        return owner

    def verify_credentials(self, identifier: str, password: str) -> Optional[dict]:
        """Check an email/password pair.

        Args:
            identifier: Login email
            password: Plain-text password

        Returns:
            Owner information dict, or None when the credentials are wrong
        """
        owner = self._fetch_owner("email", identifier)
        if not owner or not owner.get("password_hash"):
            return None
        if not hmac.compare_digest(owner.pop("password_hash"), hash_secret(password)):
            return None
        owner["owner_id"] = str(owner["owner_id"])
        return owner
