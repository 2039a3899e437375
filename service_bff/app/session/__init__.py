"""
Session handling for the BFF: captcha verification, session issuance and the
gate every domain endpoint passes through.
"""

from .captcha import CaptchaVerifier
from .gate import SessionGate
from .store import InMemorySessionStore, SessionStore

__all__ = [
    "CaptchaVerifier",
    "InMemorySessionStore",
    "SessionGate",
    "SessionStore",
]
