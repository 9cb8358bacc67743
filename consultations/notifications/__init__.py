"""Outbound notifications (email)."""

from .email import EmailDeliveryError, EmailJSClient, EmailReport, NotificationMailer

__all__ = ["EmailDeliveryError", "EmailJSClient", "EmailReport", "NotificationMailer"]
