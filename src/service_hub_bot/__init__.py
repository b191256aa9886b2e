"""Telegram bot that starts and stops host services for allow-listed operators."""

__version__ = "0.1.0"
