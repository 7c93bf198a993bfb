"""
Gateway error taxonomy.

Adapters raise these; the tester, dispatcher and webhook router turn them
into structured results or recorded failures. Only RoutingError ever reaches
an HTTP response, and then only as a rejection status.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for every error the gateway raises on purpose."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(GatewayError):
    """Required channel configuration or authentication field is missing."""


class AuthenticationError(GatewayError):
    """Provider rejected the supplied credentials."""


class NetworkError(GatewayError):
    """Provider could not be reached (timeout, DNS, refused connection)."""


class ProviderError(GatewayError):
    """Provider answered, but not with success."""


class RoutingError(GatewayError):
    """Webhook routing identifier or provider signature did not check out."""


class SignatureError(RoutingError):
    """Inbound provider signature missing or wrong."""


class UnsupportedChannelError(GatewayError):
    """No adapter is registered for the requested channel type."""

    def __init__(self, channel_type: str):
        super().__init__(f"Unsupported channel type: {channel_type}", {"type": channel_type})
        self.channel_type = channel_type
