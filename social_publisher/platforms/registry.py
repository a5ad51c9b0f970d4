# social_publisher/platforms/registry.py
from typing import Dict, Optional, Type

from social_publisher.errors import ValidationError
from social_publisher.infrastructure.http_client import ExternalAPIClient
from social_publisher.platforms.base import Platform, PlatformAdapter
from social_publisher.platforms.facebook import FacebookAdapter
from social_publisher.platforms.instagram import InstagramAdapter
from social_publisher.platforms.linkedin import LinkedInAdapter
from social_publisher.platforms.twitter import TwitterAdapter

ADAPTERS: Dict[Platform, Type[PlatformAdapter]] = {
    Platform.TWITTER: TwitterAdapter,
    Platform.LINKEDIN: LinkedInAdapter,
    Platform.FACEBOOK: FacebookAdapter,
    Platform.INSTAGRAM: InstagramAdapter,
}


def parse_platform(value: str) -> Platform:
    try:
        return Platform(value)
    except ValueError:
        raise ValidationError(f"unsupported platform: {value}")


def adapter_class(platform: str) -> Type[PlatformAdapter]:
    return ADAPTERS[parse_platform(platform)]


def get_adapter(platform: str, http: Optional[ExternalAPIClient] = None) -> PlatformAdapter:
    return adapter_class(platform)(http=http)
