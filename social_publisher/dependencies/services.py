# social_publisher/dependencies/services.py
from typing import Callable

from social_publisher.infrastructure.media_storage import HttpMediaStorage, MediaStorage
from social_publisher.infrastructure.redis_cache import redis_client
from social_publisher.platforms.base import PlatformAdapter
from social_publisher.platforms.registry import get_adapter


def get_adapter_factory() -> Callable[[str], PlatformAdapter]:
    return get_adapter


def get_state_store():
    return redis_client


def get_media_storage() -> MediaStorage:
    return HttpMediaStorage()
