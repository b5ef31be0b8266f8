"""Shared aiokafka client settings for the stage consumers, publisher and admin."""

from __future__ import annotations

import logging
from typing import Any

from aiokafka.admin import AIOKafkaAdminClient

logger = logging.getLogger("retry_relay.kafka")

# Offsets are committed by the stage consumer after handling or hand-off.
STAGE_CONSUMER_DEFAULTS: dict[str, Any] = {
    "enable_auto_commit": False,
    "auto_offset_reset": "earliest",
}


class KafkaConnectionManager:
    """Client settings every stage of the retry chain is built from.

    Each stage owns one consumer in its own group (``<prefix>-<stage>``) and
    all stages share a single producer for hand-offs, so the settings here
    are handed out per client rather than holding clients themselves.
    Extra ``client_kwargs`` (security, client id, timeouts) apply to every
    client; group settings never reach the producer or the admin client.
    """

    def __init__(
        self,
        bootstrap_servers: str | list[str] = "localhost:9092",
        **client_kwargs: Any,
    ) -> None:
        self._bootstrap_servers = bootstrap_servers
        self._client_kwargs = client_kwargs

    @property
    def bootstrap_servers(self) -> str | list[str]:
        return self._bootstrap_servers

    def _shared(self) -> dict[str, Any]:
        shared = {k: v for k, v in self._client_kwargs.items() if k != "group_id"}
        shared["bootstrap_servers"] = self._bootstrap_servers
        return shared

    def producer_config(self) -> dict[str, Any]:
        """Settings for the producer shared by the router and the demo producer."""
        return self._shared()

    def consumer_config(self, group_id: str) -> dict[str, Any]:
        """Settings for one stage consumer: manual commit, earliest reset."""
        return {**self._shared(), **STAGE_CONSUMER_DEFAULTS, "group_id": group_id}

    def admin_config(self) -> dict[str, Any]:
        return self._shared()

    def admin_client(self) -> AIOKafkaAdminClient:
        return AIOKafkaAdminClient(**self.admin_config())

    async def health_check(self) -> bool:
        """True when topic metadata can be listed."""
        admin = self.admin_client()
        try:
            await admin.start()
        except Exception as e:  # noqa: BLE001
            logger.warning("Kafka unreachable at %s: %s", self._bootstrap_servers, e)
            return False
        try:
            await admin.list_topics()
        except Exception as e:  # noqa: BLE001
            logger.warning("Kafka metadata request failed: %s", e)
            return False
        finally:
            await admin.close()
        return True
