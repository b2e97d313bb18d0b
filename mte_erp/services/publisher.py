"""
Live-update publishers.

Pushes container snapshots to subscribed browsers through a
Pusher-compatible server (Pusher Channels or soketi).
"""

from abc import ABC, abstractmethod
from typing import Any

import pusher

from mte_erp.config import settings
from mte_erp.core.logging import get_logger

log = get_logger(__name__)


class Publisher(ABC):
    """Best-effort publish/subscribe channel."""

    @abstractmethod
    def publish(self, channel: str, event: str, payload: Any) -> None:
        """
        Publish an event on a channel.

        No delivery or ordering guarantee; implementations may raise on
        transport errors and callers decide whether that matters.
        """
        pass


class NullPublisher(Publisher):
    """Publisher used when live updates are not configured."""

    def publish(self, channel: str, event: str, payload: Any) -> None:
        log.debug("publish_skipped", channel=channel, event_name=event, reason="pusher not configured")


class PusherPublisher(Publisher):
    """Publisher backed by the Pusher HTTP API."""

    def __init__(
        self,
        app_id: str | None = None,
        key: str | None = None,
        secret: str | None = None,
        host: str | None = None,
        port: int | None = None,
        cluster: str | None = None,
        ssl: bool | None = None,
    ):
        self.app_id = app_id or settings.pusher_app_id
        self.key = key or settings.pusher_key
        self.secret = secret or settings.pusher_secret
        self.host = host or settings.pusher_host
        self.port = port or settings.pusher_port
        self.cluster = cluster or settings.pusher_cluster
        self.ssl = ssl if ssl is not None else settings.pusher_ssl
        self._client: pusher.Pusher | None = None

    def _get_client(self) -> pusher.Pusher:
        """Get or create the Pusher client."""
        if not self._client:
            kwargs: dict[str, Any] = {
                "app_id": self.app_id,
                "key": self.key,
                "secret": self.secret,
                "ssl": self.ssl,
            }
            if self.host:
                kwargs["host"] = self.host
            if self.port:
                kwargs["port"] = self.port
            if self.cluster:
                kwargs["cluster"] = self.cluster
            self._client = pusher.Pusher(**kwargs)
        return self._client

    def publish(self, channel: str, event: str, payload: Any) -> None:
        self._get_client().trigger(channel, event, payload)
        log.info("event_published", channel=channel, event_name=event)


_publisher: Publisher | None = None


def get_publisher() -> Publisher:
    """Return the process-wide publisher for the configured backend."""
    global _publisher
    if _publisher is None:
        _publisher = PusherPublisher() if settings.pusher_enabled else NullPublisher()
    return _publisher
