"""Unit tests for bearer token verification."""

import uuid
from datetime import timedelta

from manuscript_hub.kernel.identity.jwt import JWTManager


class TestJWTManager:

    def setup_method(self):
        self.manager = JWTManager(
            secret_key="unit-test-secret-key-with-enough-length",
            algorithm="HS256",
            access_token_expire_minutes=30,
        )

    def test_round_trip_carries_account_id(self):
        user_id = uuid.uuid4()
        token, _, jti = self.manager.create_access_token(user_id, "alice@example.org")
        payload = self.manager.verify_access_token(token)
        assert payload is not None
        assert payload.sub == str(user_id)
        assert payload.jti == jti

    def test_expired_token_is_rejected(self):
        token, _, _ = self.manager.create_access_token(
            uuid.uuid4(), "alice@example.org", expires_delta=timedelta(seconds=-5)
        )
        assert self.manager.verify_access_token(token) is None

    def test_wrong_secret_is_rejected(self):
        token, _, _ = self.manager.create_access_token(uuid.uuid4(), "alice@example.org")
        other = JWTManager(secret_key="another-secret-key-entirely-different")
        assert other.verify_access_token(token) is None

    def test_garbage_is_rejected(self):
        assert self.manager.verify_access_token("not-a-token") is None
