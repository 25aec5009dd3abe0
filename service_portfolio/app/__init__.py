"""
Portfolio Edge service package.

The edge service fronts the portfolio website's JSON API and keeps the site
usable while the backend is cold-starting or unavailable:
- TTL cache with a durable mirror for the core portfolio sections
- Stale-while-revalidate fetching with stale fallback on errors
- Cache warming with retries and exponential backoff
- Build-time static snapshots as a zero-network fallback

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.caching: TTL cache, storage backends, cached fetcher, warmer, invalidation.
- app.static_data: Static snapshot generator and loader.
"""
