"""
Dashboard BFF service package.

The BFF fronts the dashboard, enforcing:
- Sessions: issued after captcha verification, required on domain routes
- Rate limiting: fixed window per session and domain, upstream calls only
- Caching: in-memory TTL cache keyed by domain and normalized query
- Degradation: predefined fallback data when live data is unavailable

Structure:
- app.main: FastAPI app, routes, and wiring.
- app.adapters: HTTP clients for the upstream providers.
- app.caching: TTL cache and its store.
- app.ratelimit: Fixed-window limiter and its store.
- app.session: Captcha verification and the session gate.
- app.fallback: Fallback records and resolver.
- app.gateway: Orchestrator composing the above.
"""
