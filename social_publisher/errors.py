# social_publisher/errors.py
from typing import Optional


class SocialPublisherError(Exception):
    pass


class AuthenticationError(SocialPublisherError):
    pass


class AuthorizationError(SocialPublisherError):
    """Raised when the caller does not own the resource. Surfaced as 404."""


class ValidationError(SocialPublisherError):
    pass


class ConflictError(SocialPublisherError):
    pass


class OAuthStateError(SocialPublisherError):
    pass


class StorageError(SocialPublisherError):
    pass


# reason code -> message safe to show end users
PUBLIC_MESSAGES = {
    "network_error": "The platform could not be reached. We will retry.",
    "rate_limited": "The platform is rate limiting requests. We will retry.",
    "platform_unavailable": "The platform is temporarily unavailable. We will retry.",
    "token_revoked": "Access to this account was revoked. Please reconnect it.",
    "token_expired": "The connection to this account expired. Please reconnect it.",
    "token_unreadable": "Stored credentials for this account are invalid. Please reconnect it.",
    "account_inactive": "This account is disconnected. Please reconnect it.",
    "forbidden": "The platform refused this action for the account.",
    "content_rejected": "The platform rejected the post content.",
    "media_required": "This platform requires at least one image.",
    "media_upload_failed": "Attaching media to the post failed.",
    "retries_exhausted": "Publishing kept failing and was abandoned.",
    "not_configured": "This platform is not configured.",
    "exchange_failed": "The platform did not accept the authorization. Please try again.",
    "unexpected_response": "The platform answered in an unexpected way. Check the account before retrying.",
    "not_supported": "The platform does not support this action.",
    "unexpected_error": "Publishing failed unexpectedly.",
}


class PlatformError(SocialPublisherError):
    """
    Failure reported by a platform adapter.

    `transient` errors are retried by later scheduler passes; `revoked` marks
    permanent failures caused by credentials that no longer work. `detail`
    holds the raw provider response and must only go to logs.
    """

    def __init__(self, reason: str, transient: bool = False, revoked: bool = False, detail: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.transient = transient
        self.revoked = revoked
        self.detail = detail

    @property
    def public_message(self) -> str:
        return PUBLIC_MESSAGES.get(self.reason, PUBLIC_MESSAGES["unexpected_error"])

    def __repr__(self) -> str:
        return f"PlatformError(reason={self.reason!r}, transient={self.transient}, revoked={self.revoked})"
