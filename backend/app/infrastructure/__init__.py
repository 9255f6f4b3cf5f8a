"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .chat_notifier import ChatNotifier
from .emote_client import EmoteProviderClient
from .redis_client import get_redis, close_redis

__all__ = ['ChatNotifier', 'EmoteProviderClient', 'get_redis', 'close_redis']
