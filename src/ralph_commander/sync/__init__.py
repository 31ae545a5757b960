"""Change notification and live fan-out."""

from .bridge import ChangeBridge, FileChange
from .hub import HubEvent, PublishHub, Subscription

__all__ = [
    "ChangeBridge",
    "FileChange",
    "HubEvent",
    "PublishHub",
    "Subscription",
]
