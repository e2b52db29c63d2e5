"""
API routes module.

All routers are mounted under /api/v1 in ``parlay_streak.main``.
"""
