"""
Identity tests: password hashing, token verification and principal
resolution, including the reserved admin and deactivated/locked accounts.

Run: pytest backend/test_auth_context.py -v
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import jwt
import pytest

from backend.auth_context import (
    ADMIN_PRINCIPAL,
    authenticate,
    authenticate_optional,
    create_access_token,
    hash_password,
    hash_token,
    verify_password,
    verify_token,
)
from backend.config import ALGORITHM, SECRET_KEY
from backend.errors import (
    AccountDeactivatedError,
    AccountLockedError,
    InvalidTokenError,
    UnauthenticatedError,
)
from backend.models import utcnow
from backend.repositories import UserRepository


class TestPasswords:
    def test_hash_is_salted_and_verifies(self):
        first = hash_password("mangrove42")
        second = hash_password("mangrove42")
        assert first != second
        assert verify_password("mangrove42", first)
        assert verify_password("mangrove42", second)

    def test_wrong_password_fails(self):
        assert not verify_password("wrong", hash_password("mangrove42"))

    def test_malformed_hash_fails(self):
        assert not verify_password("mangrove42", "")
        assert not verify_password("mangrove42", "no-separator")

    def test_hash_token_is_deterministic(self):
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != "abc"


class TestTokens:
    def test_round_trip_claims(self):
        payload = verify_token(create_access_token("user-1", "verifier"))
        assert payload["sub"] == "user-1"
        assert payload["role"] == "verifier"

    def test_expired_token(self):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        token = jwt.encode({"sub": "user-1", "exp": past}, SECRET_KEY, algorithm=ALGORITHM)
        with pytest.raises(InvalidTokenError, match="expired"):
            verify_token(token)

    def test_wrong_signature(self):
        token = jwt.encode({"sub": "user-1"}, "some-other-secret", algorithm=ALGORITHM)
        with pytest.raises(InvalidTokenError):
            verify_token(token)

    def test_garbage(self):
        with pytest.raises(InvalidTokenError):
            verify_token("not-a-jwt")


class TestAuthenticate:
    def test_no_token(self, db):
        with pytest.raises(UnauthenticatedError):
            authenticate(None, UserRepository(db))

    def test_admin_resolves_without_store(self):
        users = MagicMock()
        principal = authenticate(create_access_token("admin", "admin"), users)
        assert principal == ADMIN_PRINCIPAL
        assert principal.is_admin
        users.get.assert_not_called()

    def test_stored_user(self, db, make_user):
        user = make_user(role="verifier")
        principal = authenticate(create_access_token(user.id, user.role), UserRepository(db))
        assert principal.id == user.id
        assert principal.role == "verifier"
        assert principal.is_active

    def test_unknown_user(self, db):
        with pytest.raises(InvalidTokenError):
            authenticate(create_access_token("ghost", "field"), UserRepository(db))

    def test_missing_subject(self, db):
        token = jwt.encode({"role": "field"}, SECRET_KEY, algorithm=ALGORITHM)
        with pytest.raises(InvalidTokenError):
            authenticate(token, UserRepository(db))

    def test_deactivated_user(self, db, make_user):
        user = make_user(status="deactivated")
        with pytest.raises(AccountDeactivatedError):
            authenticate(create_access_token(user.id, user.role), UserRepository(db))

    def test_locked_user(self, db, make_user):
        user = make_user(lock_until=utcnow() + timedelta(minutes=30))
        with pytest.raises(AccountLockedError):
            authenticate(create_access_token(user.id, user.role), UserRepository(db))

    def test_expired_lock_allows_access(self, db, make_user):
        user = make_user(lock_until=utcnow() - timedelta(minutes=1))
        assert authenticate(create_access_token(user.id, user.role), UserRepository(db)).id == user.id

    def test_optional_swallows_failures(self, db, make_user):
        users = UserRepository(db)
        assert authenticate_optional(None, users) is None
        assert authenticate_optional("not-a-jwt", users) is None

        deactivated = make_user(status="deactivated")
        assert authenticate_optional(create_access_token(deactivated.id, "field"), users) is None

        active = make_user()
        assert authenticate_optional(create_access_token(active.id, "field"), users).id == active.id
