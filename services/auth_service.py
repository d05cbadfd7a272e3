import logging
import sqlite3
from pathlib import Path
from typing import Callable, List, Optional, Union

import bcrypt
from supabase import AuthError, Client

import config
from core.database import connect
from core.errors import AuthRequiredError, ValidationError
from core.utils import new_row_id, now_iso
from models.account import Session

logger = logging.getLogger(__name__)

SessionCallback = Callable[[Optional[Session]], None]


class _SessionNotifier:
    """Keeps the current session and tells listeners when it changes."""

    def __init__(self):
        self._session: Optional[Session] = None
        self._listeners: List[SessionCallback] = []

    def get_session(self) -> Optional[Session]:
        return self._session

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        """
        Registers a listener for sign-in/sign-out.

        Returns:
            Callable: Call it to stop listening.
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _set_session(self, session: Optional[Session]) -> None:
        self._session = session
        for callback in list(self._listeners):
            callback(session)


class LocalAuthProvider(_SessionNotifier):
    """
    Gym-owner accounts kept in the local `users` table.
    Passwords are stored as bcrypt hashes.
    """

    def __init__(self, db_file: Optional[Union[str, Path]] = None):
        super().__init__()
        self.db_file = db_file or config.DB_FILE

    def account_exists(self) -> bool:
        """
        Checks if any owner account exists in the database.
        Useful for deciding whether to show sign-up or sign-in first.
        """
        try:
            with connect(self.db_file) as conn:
                return conn.execute("SELECT 1 FROM users LIMIT 1").fetchone() is not None
        except sqlite3.Error as e:
            logger.error("Database error checking accounts: %s", e)
            return False

    def sign_up(self, email: str, password: str, name: str = "", gym_name: str = "") -> Session:
        """
        Creates an owner account with a hashed password and a main branch, then signs in.

        Args:
            email (str): Unique login email.
            password (str): Plain text password (will be hashed).
            name (str): Owner name.
            gym_name (str): Name shown on the dashboard.

        Raises:
            ValidationError: If a field is missing or the email is taken.
        """
        email = (email or "").strip().lower()
        if not email or not password:
            raise ValidationError("Email and password are required")

        hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt())
        account_id = new_row_id()
        created = now_iso()
        try:
            with connect(self.db_file) as conn:
                conn.execute(
                    "INSERT INTO users (id, email, password_hash, name, gym_name, role, created_at) "
                    "VALUES (?, ?, ?, ?, ?, 'owner', ?)",
                    (account_id, email, hashed, name or None, gym_name or None, created),
                )
                conn.execute(
                    "INSERT INTO branches (id, owner_id, name, is_main, created_at) VALUES (?, ?, ?, 1, ?)",
                    (new_row_id(), account_id, "Main Branch", created),
                )
        except sqlite3.IntegrityError:
            raise ValidationError("An account with this email already exists")

        logger.info("Created account %s", email)
        session = Session(account_id, email, name or None)
        self._set_session(session)
        return session

    def sign_in(self, email: str, password: str) -> Session:
        """
        Verifies credentials against the database.

        Raises:
            AuthRequiredError: If the email is unknown or the password is wrong.
        """
        email = (email or "").strip().lower()
        with connect(self.db_file) as conn:
            row = conn.execute(
                "SELECT id, password_hash, name FROM users WHERE email = ?", (email,)
            ).fetchone()

        if row is None or not bcrypt.checkpw(password.encode('utf-8'), row["password_hash"]):
            raise AuthRequiredError("Invalid email or password")

        session = Session(row["id"], email, row["name"])
        self._set_session(session)
        return session

    def sign_out(self) -> None:
        if self._session is not None:
            self._set_session(None)


class SupabaseAuthProvider(_SessionNotifier):
    """Supabase Auth; the cache gets the signed-in user id and the access token."""

    def __init__(self, client: Client):
        super().__init__()
        self.client = client

    @staticmethod
    def _to_session(auth_session) -> Optional[Session]:
        if auth_session is None or auth_session.user is None:
            return None
        user = auth_session.user
        metadata = user.user_metadata or {}
        return Session(user.id, user.email or "", metadata.get("name"), auth_session.access_token)

    def get_session(self) -> Optional[Session]:
        if self._session is None:
            self._session = self._to_session(self.client.auth.get_session())
        return self._session

    def sign_up(self, email: str, password: str, name: str = "", gym_name: str = "") -> Optional[Session]:
        try:
            response = self.client.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"name": name, "gym_name": gym_name}},
            })
        except AuthError as e:
            raise ValidationError(e.message)
        session = self._to_session(response.session)
        if session is not None:
            self._set_session(session)
        return session

    def sign_in(self, email: str, password: str) -> Session:
        try:
            response = self.client.auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as e:
            raise AuthRequiredError(e.message)
        session = self._to_session(response.session)
        if session is None:
            raise AuthRequiredError("Invalid email or password")
        self._set_session(session)
        return session

    def sign_out(self) -> None:
        self.client.auth.sign_out()
        self._set_session(None)
