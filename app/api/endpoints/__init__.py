"""
API endpoint modules

Routers are included by main.py:
    from app.api.endpoints.auth import router as auth_router
"""
