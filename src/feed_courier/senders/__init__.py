"""Delivery channels and the retrying router in front of them."""

from .base import Sender
from .router import RoutedDelivery, SenderRouter
from .telegram import TelegramBotSender

__all__ = ["RoutedDelivery", "Sender", "SenderRouter", "TelegramBotSender"]
