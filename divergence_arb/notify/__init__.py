"""Notification modules for the divergence arbitrage bot."""

from .telegram import TelegramNotifier

__all__ = ["TelegramNotifier"]
