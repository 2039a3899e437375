"""
Gateway composition: the orchestrator wiring session-scoped rate limiting,
the TTL cache, upstream clients and the fallback resolver together.
"""

from .orchestrator import GatewayOrchestrator

__all__ = ["GatewayOrchestrator"]
