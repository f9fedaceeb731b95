"""Sender registry for getting the right sender by platform."""

from typing import Dict, Optional, Type

import httpx

from integrations.base import PlatformSender
from integrations.credentials import IntegrationLoader
from integrations.models import PlatformType


class SenderRegistry:
    """Registry of platform senders.

    Maps platform types to sender classes. Used by the queue processor and
    the inbound reply path to get the sender for a bot's platform.
    """

    def __init__(self) -> None:
        self._senders: Dict[PlatformType, Type[PlatformSender]] = {}

    def register(self, platform: PlatformType, sender_class: Type[PlatformSender]) -> None:
        self._senders[platform] = sender_class

    def get_sender(
        self,
        platform: PlatformType,
        integrations: IntegrationLoader,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> PlatformSender:
        """Get a sender instance for the given platform.

        Args:
            platform: Platform type identifier.
            integrations: Credential loader passed to the sender.
            http_client: Optional shared HTTP client.
            timeout: Per-request timeout in seconds.

        Returns:
            Instantiated sender for the platform.

        Raises:
            ValueError: If platform is not registered.
        """
        sender_class = self._senders.get(platform)
        if sender_class is None:
            raise ValueError(
                f"No sender registered for platform '{platform}'. "
                f"Available platforms: {list(self._senders.keys())}"
            )
        return sender_class(integrations, http_client=http_client, timeout=timeout)

    def list_platforms(self) -> list[PlatformType]:
        return list(self._senders.keys())


# Global default registry instance (populated in integrations/__init__.py)
default_registry = SenderRegistry()
