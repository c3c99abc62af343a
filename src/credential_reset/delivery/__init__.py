"""Code delivery: channel types, receipts and the dispatcher.

Adapters live in submodules (``memory``, ``twilio``, ``smtp``) and are
imported explicitly by the caller.
"""

from __future__ import annotations

from .channel import ChannelType, DeliveryReceipt, DeliveryStatus
from .dispatcher import DeliveryDispatcher

__all__: list[str] = [
    "ChannelType",
    "DeliveryReceipt",
    "DeliveryStatus",
    "DeliveryDispatcher",
]
