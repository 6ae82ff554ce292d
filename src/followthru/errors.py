"""Exceptions raised by Followthru."""

from __future__ import annotations


class FollowthruError(Exception):
    """Base class for Followthru errors."""

    pass


class InvalidContextError(FollowthruError):
    """A generation request is missing required fields or names an unknown trigger."""

    pass


class StoreError(FollowthruError):
    """A read or write against the store failed."""

    pass


class UnresolvedPlaceholderError(FollowthruError):
    """A rendered template still contains {token} placeholders."""

    def __init__(self, template_key: str, tokens: list[str]):
        self.template_key = template_key
        self.tokens = tokens
        super().__init__(
            f"Template '{template_key}' left unresolved placeholders: {', '.join(tokens)}"
        )


class ConfigError(FollowthruError):
    """Configuration error."""

    pass
