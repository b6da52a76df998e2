"""
Tests for session tokens and participant checks.
"""

import time

import pytest
from jose import jwt

from booking_chat.core.errors import Unauthorized
from booking_chat.models.models import Identity, Role
from booking_chat.services.auth_service import SessionTokens, ensure_party
from tests.conftest import CLIENT_ID, PROVIDER_ID, TEST_SECRET, make_booking


@pytest.mark.unit
class TestSessionTokens:
    def test_issue_and_verify(self, tokens):
        identity = tokens.verify(tokens.issue(PROVIDER_ID, Role.PROVIDER))

        assert identity == Identity(user_id=PROVIDER_ID, role=Role.PROVIDER)

    def test_expired_token(self, tokens):
        token = tokens.issue(CLIENT_ID, Role.CLIENT, ttl_seconds=-10)

        with pytest.raises(Unauthorized):
            tokens.verify(token)

    def test_wrong_secret(self, tokens):
        token = SessionTokens("someone-else").issue(CLIENT_ID, Role.CLIENT)

        with pytest.raises(Unauthorized):
            tokens.verify(token)

    @pytest.mark.parametrize("token", ["", "abc.def.ghi"])
    def test_garbage(self, tokens, token):
        with pytest.raises(Unauthorized):
            tokens.verify(token)

    def test_user_role_means_client(self, tokens):
        now = int(time.time())
        token = jwt.encode({"sub": "7", "role": "user", "exp": now + 60}, TEST_SECRET, algorithm="HS256")

        assert tokens.verify(token) == Identity(user_id=7, role=Role.CLIENT)

    @pytest.mark.parametrize("claims", [
        {"sub": "7"},
        {"sub": "7", "role": "admin"},
        {"role": "client"},
        {"sub": "not-a-number", "role": "client"},
    ])
    def test_missing_identity_claims(self, tokens, claims):
        token = jwt.encode({**claims, "exp": int(time.time()) + 60}, TEST_SECRET, algorithm="HS256")

        with pytest.raises(Unauthorized):
            tokens.verify(token)


@pytest.mark.unit
class TestEnsureParty:
    def test_parties_pass(self):
        booking = make_booking()

        ensure_party(booking, Identity(user_id=CLIENT_ID, role=Role.CLIENT))
        ensure_party(booking, Identity(user_id=PROVIDER_ID, role=Role.PROVIDER))

    def test_outsider_is_rejected(self):
        with pytest.raises(Unauthorized):
            ensure_party(make_booking(), Identity(user_id=CLIENT_ID, role=Role.PROVIDER))

    def test_unassigned_side_is_open(self):
        booking = make_booking(provider_id=None)

        ensure_party(booking, Identity(user_id=55, role=Role.PROVIDER))
