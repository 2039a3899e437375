"""
Captcha provider client.

Speaks the ``siteverify`` protocol shared by reCAPTCHA and hCaptcha: a form
POST with ``secret`` and ``response`` answered by ``{"success": bool, ...}``.
"""

from typing import Any, Dict, Optional

import httpx

from shared.errors import CaptchaError
from shared.logging import get_logger


class CaptchaVerifier:
    """Verifies captcha tokens with the provider."""

    def __init__(
        self,
        verify_url: str,
        secret: str,
        *,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.verify_url = verify_url
        self.secret = secret
        self.timeout = timeout
        self.logger = get_logger("bff.captcha")
        self._transport = transport

    async def verify(self, captcha_token: str, remote_ip: Optional[str] = None) -> Dict[str, Any]:
        """Return the provider verdict, raising CaptchaError unless it succeeded."""
        if not captcha_token or not captcha_token.strip():
            raise CaptchaError("Captcha token is required", details={"reason": "missing"})
        if not self.secret:
            raise CaptchaError("Captcha verification is not configured", details={"reason": "unconfigured"})

        form = {"secret": self.secret, "response": captcha_token.strip()}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.verify_url, data=form)
        except httpx.TimeoutException as exc:
            self.logger.warning("Captcha provider timed out", error=str(exc))
            raise CaptchaError("Captcha provider timed out", details={"reason": "timeout"}) from exc
        except httpx.HTTPError as exc:
            self.logger.error("Captcha provider unreachable", error=str(exc))
            raise CaptchaError("Captcha provider unreachable", details={"reason": "unavailable"}) from exc

        if response.status_code != 200:
            self.logger.error("Captcha provider error", status_code=response.status_code)
            raise CaptchaError(
                "Captcha provider error",
                details={"reason": "unavailable", "status_code": response.status_code},
            )

        try:
            verdict = response.json()
        except ValueError as exc:
            raise CaptchaError("Captcha provider returned invalid JSON", details={"reason": "malformed"}) from exc

        if not isinstance(verdict, dict) or verdict.get("success") is not True:
            error_codes = verdict.get("error-codes", []) if isinstance(verdict, dict) else []
            self.logger.info("Captcha rejected", error_codes=error_codes)
            raise CaptchaError(
                "Captcha token rejected",
                details={"reason": "rejected", "error_codes": error_codes},
            )

        return verdict
