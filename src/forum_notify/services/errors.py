"""Typed errors raised by the synchronous forum operations.

The scheduled job never lets these escape; interactive callers (the HTTP layer)
translate them into responses.
"""


class ForumNotifyError(RuntimeError):
    """Base exception for all forum service failures."""


class NotFoundError(ForumNotifyError):
    """Raised when a referenced forum, discussion, post or user does not exist."""


class PermissionDeniedError(ForumNotifyError):
    """Raised when the acting user lacks a required capability."""


class InvalidDigestSettingError(ForumNotifyError, ValueError):
    """Raised when a digest mode outside the supported values is requested."""


class InvalidSubscriptionModeError(ForumNotifyError, ValueError):
    """Raised when a forum subscription mode outside the supported values is requested."""


class MissingFilterError(ForumNotifyError, ValueError):
    """Raised when a bulk delete of read records is attempted without any filter."""


class SubscriptionDisallowedError(ForumNotifyError):
    """Raised when subscribing to a forum that does not allow subscriptions."""


class SubscriptionForcedError(ForumNotifyError):
    """Raised when unsubscribing from a forum where everyone is subscribed."""


class PostHasRepliesError(ForumNotifyError):
    """Raised when deleting a post with replies without asking for its children."""
