import asyncio
import logging
from datetime import timezone
from typing import Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from storage.db import Database
from timebeacon.errors import AuthenticationFailure

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
]


def _naive_utc(expiry):
    # google-auth compares expiry against a naive utcnow()
    if expiry and expiry.tzinfo:
        return expiry.astimezone(timezone.utc).replace(tzinfo=None)
    return expiry


async def ensure_fresh(credentials: Credentials) -> bool:
    """
    Refresh expired credentials in place.

    Returns True when a refresh happened. A rejected refresh token is an
    authentication failure for the caller's import.
    """
    if credentials.valid:
        return False
    if not credentials.refresh_token:
        raise AuthenticationFailure("Google credentials expired and no refresh token is stored")
    try:
        await asyncio.to_thread(credentials.refresh, Request())
    except RefreshError as e:
        raise AuthenticationFailure(f"Google token refresh rejected: {e}") from e
    return True


class InMemoryGoogleAuthStore:
    def __init__(self):
        self._creds: Dict[str, Credentials] = {}

    async def save_credentials(self, user_id: str, credentials: Credentials, email: str = None) -> None:
        self._creds[user_id] = credentials

    async def get_credentials(self, user_id: str) -> Optional[Credentials]:
        return self._creds.get(user_id)

    async def delete_credentials(self, user_id: str) -> None:
        self._creds.pop(user_id, None)


class GoogleAuthStore:
    def __init__(
        self,
        db: Database,
        encryption_key: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ):
        self.db = db
        self.client_id = client_id
        self.client_secret = client_secret

        # Generate a key if not provided (for development/testing only)
        # In production, this MUST be provided via GOOGLE_TOKEN_ENCRYPTION_KEY
        if not encryption_key:
            logger.warning("GOOGLE_TOKEN_ENCRYPTION_KEY not set. Generating a temporary key.")
            encryption_key = Fernet.generate_key().decode()
        self.fernet = Fernet(encryption_key.encode() if isinstance(encryption_key, str) else encryption_key)

    def _encrypt(self, data: Optional[str]) -> Optional[str]:
        if not data:
            return None
        return self.fernet.encrypt(data.encode()).decode()

    def _decrypt(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        try:
            return self.fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            logger.error("Failed to decrypt stored Google token")
            return None

    async def save_credentials(self, user_id: str, credentials: Credentials, email: str = None) -> None:
        """Store OAuth tokens in PostgreSQL (encrypted)."""
        # keep the existing refresh token when the new credentials lack one
        await self.db.execute(
            """
            INSERT INTO google_credentials (user_id, access_token, refresh_token, token_expiry, email)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (user_id) DO UPDATE SET
                access_token = EXCLUDED.access_token,
                refresh_token = COALESCE(EXCLUDED.refresh_token, google_credentials.refresh_token),
                token_expiry = EXCLUDED.token_expiry,
                email = COALESCE(EXCLUDED.email, google_credentials.email),
                updated_at = NOW()
            """,
            user_id,
            self._encrypt(credentials.token),
            self._encrypt(credentials.refresh_token),
            credentials.expiry.replace(tzinfo=timezone.utc) if credentials.expiry else None,
            email,
        )
        logger.info(f"Saved Google credentials for user {user_id}")

    async def get_credentials(self, user_id: str) -> Optional[Credentials]:
        row = await self.db.fetchrow(
            "SELECT access_token, refresh_token, token_expiry FROM google_credentials WHERE user_id = $1",
            user_id,
        )
        if not row:
            return None

        access_token = self._decrypt(row["access_token"])
        if not access_token:
            return None

        return Credentials(
            token=access_token,
            refresh_token=self._decrypt(row["refresh_token"]),
            token_uri=TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=SCOPES,
            expiry=_naive_utc(row["token_expiry"]),
        )

    async def delete_credentials(self, user_id: str) -> None:
        await self.db.execute("DELETE FROM google_credentials WHERE user_id = $1", user_id)
        logger.info(f"Deleted Google credentials for user {user_id}")
