"""Tests for the local and Supabase auth providers."""
from unittest.mock import MagicMock

import pytest
from supabase import AuthError

from core.errors import AuthRequiredError, ValidationError
from models.account import Session
from services.auth_service import LocalAuthProvider, SupabaseAuthProvider


class TestLocalAuthProvider:

    def test_sign_up_signs_in_and_creates_branch(self, auth, seed):
        assert auth.account_exists() is False

        session = auth.sign_up("New@Example.com", "pw12345", name="Meera", gym_name="Flex")

        assert auth.account_exists() is True
        assert session.email == "new@example.com"
        assert auth.get_session() == session
        branches = seed.select("branches", session.account_id)
        assert [b["name"] for b in branches] == ["Main Branch"]

    def test_duplicate_email(self, auth, account_id):
        with pytest.raises(ValidationError):
            auth.sign_up("owner@example.com", "another")

    def test_sign_in_checks_password(self, auth, account_id):
        with pytest.raises(AuthRequiredError):
            auth.sign_in("owner@example.com", "wrong")
        with pytest.raises(AuthRequiredError):
            auth.sign_in("nobody@example.com", "secret123")

        session = auth.sign_in("owner@example.com", "secret123")
        assert session.account_id == account_id
        assert session.name == "Ravi"

    def test_listeners(self, auth, account_id):
        seen = []
        unsubscribe = auth.on_session_change(seen.append)

        auth.sign_in("owner@example.com", "secret123")
        auth.sign_out()
        unsubscribe()
        auth.sign_in("owner@example.com", "secret123")

        assert [s.account_id if s else None for s in seen] == [account_id, None]


class TestSupabaseAuthProvider:

    @pytest.fixture
    def client(self):
        client = MagicMock()
        user = MagicMock(id="uid-1", email="owner@example.com", user_metadata={"name": "Ravi"})
        client.auth.sign_in_with_password.return_value = MagicMock(
            session=MagicMock(user=user, access_token="jwt-token"))
        client.auth.get_session.return_value = None
        return client

    def test_sign_in_maps_session(self, client):
        provider = SupabaseAuthProvider(client)
        seen = []
        provider.on_session_change(seen.append)

        session = provider.sign_in("owner@example.com", "pw")

        assert session == Session("uid-1", "owner@example.com", "Ravi", "jwt-token")
        assert seen == [session]
        client.auth.sign_in_with_password.assert_called_once_with(
            {"email": "owner@example.com", "password": "pw"})

    def test_sign_in_error(self, client):
        client.auth.sign_in_with_password.side_effect = AuthError("Invalid login credentials", None)
        with pytest.raises(AuthRequiredError) as err:
            SupabaseAuthProvider(client).sign_in("owner@example.com", "bad")
        assert err.value.message == "Invalid login credentials"

    def test_no_session(self, client):
        assert SupabaseAuthProvider(client).get_session() is None

    def test_sign_out(self, client):
        provider = SupabaseAuthProvider(client)
        provider.sign_in("owner@example.com", "pw")
        provider.sign_out()
        assert provider.get_session() is None
        client.auth.sign_out.assert_called_once()
