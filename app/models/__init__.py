"""
Database models for the Blood Test Analyzer API
"""
from app.models.user import AuthProvider, User
from app.models.magic_link import MagicLinkToken

__all__ = [
    "AuthProvider",
    "MagicLinkToken",
    "User",
]
