"""Database operations for the user directory.

The users table is read during authentication, before any
subject is established. Email is the natural key and is always lower-cased.
"""

import logging
from contextlib import contextmanager
from typing import Any
from uuid import UUID

import psycopg2

from clients.postgres_client import PostgresClient
from auth.exceptions import DatabaseUnavailableError
from auth.types import AuthProvider, User
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_USER_COLUMNS = (
    "id, email, name, avatar, email_verified, provider, provider_id, created_at, updated_at"
)


@contextmanager
def database_guard(operation: str):
    """Surface any psycopg2 failure (including pool exhaustion) as DatabaseUnavailableError."""
    try:
        yield
    except psycopg2.Error as e:
        logger.error(f"Database {operation} failed: {type(e).__name__}: {e}")
        raise DatabaseUnavailableError(f"Database unavailable during {operation}") from e


def _row_to_user(row: dict[str, Any]) -> User:
    return User(
        id=UUID(row["id"]) if isinstance(row["id"], str) else row["id"],
        email=row["email"],
        name=row["name"],
        avatar=row["avatar"],
        email_verified=row["email_verified"],
        provider=AuthProvider(row["provider"]),
        provider_id=row["provider_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def normalize_email(email: str) -> str:
    """Canonical form used for every lookup and every throttle key."""
    return email.strip().lower()


class AuthDatabase:
    """User directory operations for authentication.

    Every method raises DatabaseUnavailableError if Postgres fails.
    """

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def get_user_by_email(self, email: str) -> User | None:
        """Find user by email (case-insensitive)."""
        with database_guard("get_user_by_email"):
            row = self._db.execute_single(
                f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s",
                (normalize_email(email),),
            )
        return _row_to_user(row) if row else None

    def get_user_by_id(self, user_id: UUID) -> User | None:
        """Find user by ID."""
        with database_guard("get_user_by_id"):
            row = self._db.execute_single(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
                (user_id,),
            )
        return _row_to_user(row) if row else None

    def get_user_by_provider_id(self, provider: AuthProvider, provider_id: str) -> User | None:
        """Find user by federated identity."""
        with database_guard("get_user_by_provider_id"):
            row = self._db.execute_single(
                f"SELECT {_USER_COLUMNS} FROM users WHERE provider = %s AND provider_id = %s",
                (provider.value, provider_id),
            )
        return _row_to_user(row) if row else None

    def create_user(
        self,
        email: str,
        provider: AuthProvider,
        password_hash: str | None = None,
        name: str | None = None,
        avatar: str | None = None,
        provider_id: str | None = None,
        email_verified: bool = False,
    ) -> User:
        """Create new user with email (lowercased)."""
        now = now_utc()
        with database_guard("create_user"):
            rows = self._db.execute_returning(
                f"""INSERT INTO users
                       (email, password_hash, name, avatar, email_verified,
                        provider, provider_id, created_at, updated_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                   RETURNING {_USER_COLUMNS}""",
                (
                    normalize_email(email),
                    password_hash,
                    name,
                    avatar,
                    email_verified,
                    provider.value,
                    provider_id,
                    now,
                    now,
                ),
            )
        return _row_to_user(rows[0])

    def get_or_create_user(self, email: str, provider: AuthProvider) -> tuple[User, bool]:
        """Get existing or create new user.

        A concurrent creator can win the unique-email race; the insert is
        written as ON CONFLICT DO NOTHING so the loser falls back to a read.

        Returns:
            Tuple of (user, was_created)
        """
        existing = self.get_user_by_email(email)
        if existing:
            return existing, False

        now = now_utc()
        with database_guard("get_or_create_user"):
            rows = self._db.execute_returning(
                f"""INSERT INTO users (email, email_verified, provider, created_at, updated_at)
                   VALUES (%s, false, %s, %s, %s)
                   ON CONFLICT (email) DO NOTHING
                   RETURNING {_USER_COLUMNS}""",
                (normalize_email(email), provider.value, now, now),
            )
        if rows:
            return _row_to_user(rows[0]), True

        user = self.get_user_by_email(email)
        if user is None:
            raise RuntimeError(f"User {normalize_email(email)} vanished during get_or_create")
        return user, False

    def get_password_hash(self, user_id: UUID) -> str | None:
        """Stored password hash, or None for passwordless accounts."""
        with database_guard("get_password_hash"):
            row = self._db.execute_single(
                "SELECT password_hash FROM users WHERE id = %s",
                (user_id,),
            )
        return row["password_hash"] if row else None

    def update_password_hash(self, user_id: UUID, password_hash: str) -> bool:
        """Replace the password hash. Returns False if user not found."""
        with database_guard("update_password_hash"):
            rows = self._db.execute_returning(
                "UPDATE users SET password_hash = %s, updated_at = %s WHERE id = %s RETURNING id",
                (password_hash, now_utc(), user_id),
            )
        return len(rows) > 0

    def update_email_verified(self, user_id: UUID, verified: bool = True) -> None:
        """Set the email-verified flag. Idempotent."""
        with database_guard("update_email_verified"):
            self._db.execute_returning(
                "UPDATE users SET email_verified = %s, updated_at = %s WHERE id = %s RETURNING id",
                (verified, now_utc(), user_id),
            )

    def update_profile(
        self,
        user_id: UUID,
        name: str | None = None,
        avatar: str | None = None,
    ) -> User | None:
        """Update display fields. Fields left as None are unchanged.

        Returns:
            The updated user, or None if not found.
        """
        updates = {"name": name, "avatar": avatar}
        assignments = [f"{column} = %s" for column, value in updates.items() if value is not None]
        if not assignments:
            return self.get_user_by_id(user_id)

        params = [value for value in updates.values() if value is not None]
        with database_guard("update_profile"):
            rows = self._db.execute_returning(
                f"""UPDATE users
                   SET {", ".join(assignments)}, updated_at = %s
                   WHERE id = %s
                   RETURNING {_USER_COLUMNS}""",
                (*params, now_utc(), user_id),
            )
        return _row_to_user(rows[0]) if rows else None

    def link_provider(
        self,
        user_id: UUID,
        provider: AuthProvider,
        provider_id: str,
        avatar: str | None = None,
    ) -> User:
        """Attach a federated identity to an existing user.

        Linking proves control of the email, so it is marked verified. An
        existing avatar is kept; `avatar` only fills an empty one.
        """
        with database_guard("link_provider"):
            rows = self._db.execute_returning(
                f"""UPDATE users
                   SET provider = %s, provider_id = %s, email_verified = true,
                       avatar = COALESCE(avatar, %s), updated_at = %s
                   WHERE id = %s
                   RETURNING {_USER_COLUMNS}""",
                (provider.value, provider_id, avatar, now_utc(), user_id),
            )
        return _row_to_user(rows[0])

    def delete_user(self, user_id: UUID) -> bool:
        """Permanently delete user.

        Returns:
            True if user was found and deleted, False if not found.
        """
        with database_guard("delete_user"):
            rows = self._db.execute_returning(
                "DELETE FROM users WHERE id = %s RETURNING id",
                (user_id,),
            )
        return len(rows) > 0
