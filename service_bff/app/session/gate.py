"""
Session gate: issues sessions after captcha verification and validates them
on every domain request.
"""

from __future__ import annotations

import re
import secrets
import time
from typing import Callable, Optional

from shared.errors import AuthError
from shared.logging import fingerprint, get_logger

from service_bff.app.models import Session
from service_bff.app.session.captcha import CaptchaVerifier
from service_bff.app.session.store import SessionStore

_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{32,128}$")
TOKEN_BYTES = 32


class SessionGate:
    """Issues and validates short-lived opaque session tokens."""

    def __init__(
        self,
        store: SessionStore,
        captcha: CaptchaVerifier,
        *,
        ttl_seconds: int = 900,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.captcha = captcha
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger("bff.session_gate")
        self._clock = clock

    async def validate(self, token: Optional[str]) -> Session:
        """Return the live session for ``token`` or raise AuthError."""
        if not token:
            raise AuthError("Missing session")
        if not _TOKEN_PATTERN.match(token):
            raise AuthError("Malformed session token")

        session = await self.store.get(token)
        if session is None:
            raise AuthError("Unknown session")

        if session.is_expired(self._clock()):
            await self.store.discard(token)
            self.logger.info("Session expired", session=fingerprint(token))
            raise AuthError("Session expired")

        return session

    async def issue(self, captcha_token: str, remote_ip: Optional[str] = None) -> Session:
        """Verify ``captcha_token`` and create a new session.

        Raises CaptchaError when the provider does not confirm the token; no
        session is created in that case.
        """
        await self.captcha.verify(captcha_token, remote_ip=remote_ip)

        now = self._clock()
        session = Session(
            token=secrets.token_urlsafe(TOKEN_BYTES),
            issued_at=now,
            expires_at=now + self.ttl_seconds,
        )
        await self.store.add(session)
        self.logger.info("Session issued", session=fingerprint(session.token), ttl_seconds=self.ttl_seconds)
        return session

    async def purge_expired(self) -> int:
        """Drop sessions that can no longer validate."""
        now = self._clock()
        return await self.store.purge(lambda session: session.is_expired(now))
