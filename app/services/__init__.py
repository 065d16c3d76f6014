"""
Services for the Blood Test Analyzer API
"""
from app.services.auth_service import AuthResult, AuthService
from app.services.email_service import NotificationSender, ResendEmailSender

__all__ = [
    "AuthResult",
    "AuthService",
    "NotificationSender",
    "ResendEmailSender",
]
