"""Notification channel implementations, one module per transport."""
