"""Gmail OAuth2 credential helpers."""

from inbox_assistant.auth.credentials import get_gmail_credentials, get_gmail_service

__all__ = ["get_gmail_credentials", "get_gmail_service"]
