"""
Live-update fanout for ordered collections.

After a committed mutation the full ordered list of every affected
container is pushed to that container's channel. Delivery is best-effort:
failures are logged and dropped, clients recover on their next refetch.
"""

from typing import Any

from mte_erp.core.logging import get_logger
from mte_erp.core.models import OrderedItem
from mte_erp.services.publisher import Publisher

log = get_logger(__name__)


def snapshot_payload(container_id: int, items: list[OrderedItem]) -> dict:
    """Wire payload for a container snapshot."""
    return {
        "container_id": container_id,
        "items": [item.to_dict() for item in items],
    }


class LiveUpdateFanout:
    """Pushes container snapshots and single events through a Publisher."""

    def __init__(self, publisher: Publisher):
        self.publisher = publisher

    def publish(self, channel: str, event: str, payload: Any) -> bool:
        """
        Publish one event, swallowing publisher errors.

        Returns:
            True if the publisher accepted the event.
        """
        try:
            self.publisher.publish(channel, event, payload)
            return True
        except Exception as e:
            log.warning(
                "fanout_failed",
                channel=channel,
                event_name=event,
                error=str(e),
            )
            return False

    def push(self, channel: str, event: str, container_id: int, items: list[OrderedItem]) -> bool:
        """Publish one container snapshot."""
        return self.publish(channel, event, snapshot_payload(container_id, items))

    def push_all(
        self,
        event: str,
        snapshots: dict[int, list[OrderedItem]],
        channels: dict[int, str],
    ) -> int:
        """Publish each container independently; returns how many were accepted."""
        return sum(
            1 for container_id, items in snapshots.items()
            if self.push(channels[container_id], event, container_id, items)
        )
