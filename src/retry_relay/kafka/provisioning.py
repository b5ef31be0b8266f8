"""Create missing stage topics before the consumers subscribe."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aiokafka.admin import NewTopic
from aiokafka.errors import KafkaError, TopicAlreadyExistsError

from ..exceptions import MessagingConnectionError

if TYPE_CHECKING:
    from ..topology import StageTopology
    from .connection import KafkaConnectionManager

logger = logging.getLogger("retry_relay.provisioning")


class TopicProvisioner:
    """Creates the missing stage topics (single partition each)."""

    def __init__(
        self,
        connection: KafkaConnectionManager,
        topology: StageTopology,
        *,
        num_partitions: int = 1,
        replication_factor: int = 1,
    ) -> None:
        self._connection = connection
        self._topology = topology
        self._num_partitions = num_partitions
        self._replication_factor = replication_factor

    async def ensure_topics(self) -> list[str]:
        """Create missing topics and return their names.

        Raises:
            MessagingConnectionError: the cluster is unreachable or refused
                to create a topic.
        """
        wanted = self._topology.all_topics()
        admin = self._connection.admin_client()
        try:
            await admin.start()
            try:
                existing = set(await admin.list_topics())
                missing = [t for t in wanted if t not in existing]
                if not missing:
                    logger.info("All topics already exist")
                    return []
                logger.info(
                    "Creating %d topics: %s", len(missing), ", ".join(missing)
                )
                try:
                    await admin.create_topics(
                        [
                            NewTopic(
                                name=topic,
                                num_partitions=self._num_partitions,
                                replication_factor=self._replication_factor,
                            )
                            for topic in missing
                        ]
                    )
                except TopicAlreadyExistsError:
                    logger.info("Topics were created concurrently")
                logger.info("Topics created successfully")
                return missing
            finally:
                await admin.close()
        except KafkaError as e:
            logger.error("Error creating topics: %s", e)
            raise MessagingConnectionError(f"Topic provisioning failed: {e}") from e
