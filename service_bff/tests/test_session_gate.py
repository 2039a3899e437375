"""
Unit tests for the session gate.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.errors import AuthError, CaptchaError
from service_bff.app.models import Session
from service_bff.app.session import InMemorySessionStore, SessionGate


class TestSessionGate:
    """Test cases for SessionGate."""

    @pytest.fixture
    def captcha(self):
        """Captcha verifier that accepts every token."""
        verifier = MagicMock()
        verifier.verify = AsyncMock(return_value={"success": True})
        return verifier

    @pytest.fixture
    def store(self):
        return InMemorySessionStore()

    @pytest.fixture
    def gate(self, store, captcha, clock):
        """Create SessionGate with a 900 second TTL."""
        return SessionGate(store, captcha, ttl_seconds=900, clock=clock)

    @pytest.mark.asyncio
    async def test_issue_creates_session(self, gate, store, captcha, clock):
        """A verified captcha yields a stored session."""
        session = await gate.issue("captcha-ok", remote_ip="10.0.0.1")

        captcha.verify.assert_awaited_once_with("captcha-ok", remote_ip="10.0.0.1")
        assert len(session.token) >= 32
        assert session.issued_at == clock()
        assert session.expires_at == clock() + 900
        assert await store.get(session.token) == session

    @pytest.mark.asyncio
    async def test_issue_generates_unique_tokens(self, gate):
        """Every issued session has its own token."""
        tokens = {(await gate.issue("captcha-ok")).token for _ in range(20)}
        assert len(tokens) == 20

    @pytest.mark.asyncio
    async def test_issue_rejected_captcha_creates_nothing(self, gate, store, captcha):
        """No session exists after a failed verification."""
        captcha.verify.side_effect = CaptchaError("Captcha token rejected", details={"reason": "rejected"})

        with pytest.raises(CaptchaError):
            await gate.issue("bad")

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_validate_live_session(self, gate, clock):
        """A fresh session validates."""
        issued = await gate.issue("captcha-ok")
        clock.advance(899)

        assert await gate.validate(issued.token) == issued

    @pytest.mark.asyncio
    async def test_validate_at_expiry_instant(self, gate, clock):
        """The session is still valid exactly at expires_at."""
        issued = await gate.issue("captcha-ok")
        clock.advance(900)

        assert await gate.validate(issued.token) == issued

    @pytest.mark.asyncio
    async def test_validate_expired_session(self, gate, store, clock):
        """Expired sessions are rejected and forgotten."""
        issued = await gate.issue("captcha-ok")
        clock.advance(901)

        with pytest.raises(AuthError) as exc_info:
            await gate.validate(issued.token)

        assert exc_info.value.status_code == 401
        assert await store.get(issued.token) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, "", "short", "x" * 40 + "!"])
    async def test_validate_missing_or_malformed(self, gate, token):
        """Missing and malformed tokens are rejected before lookup."""
        with pytest.raises(AuthError):
            await gate.validate(token)

    @pytest.mark.asyncio
    async def test_validate_unknown_token(self, gate):
        """Well-formed but unknown tokens are rejected."""
        with pytest.raises(AuthError) as exc_info:
            await gate.validate("z" * 43)
        assert exc_info.value.message == "Unknown session"

    @pytest.mark.asyncio
    async def test_purge_expired(self, gate, store, clock):
        """Sweeper drops only expired sessions."""
        await store.add(Session(token="o" * 43, issued_at=clock() - 1000, expires_at=clock() - 100))
        live = await gate.issue("captcha-ok")

        removed = await gate.purge_expired()

        assert removed == 1
        assert await store.get(live.token) == live
