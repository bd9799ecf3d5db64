"""
Broker Adapter Factory

Creates the broker adapter selected by configuration.

Author: Ayodele Oladeji
Date: 2026-10-13
"""

from typing import Optional

from ..exceptions import InvalidRequestError
from ..models import BrokerCredential
from .azure_sdk import AzureServiceBusBroker
from .interface import BrokerAdapter, BrokerConfig, BrokerType
from .inmemory import InMemoryBroker, InMemoryNamespace


def create_broker(
    config: BrokerConfig,
    credential: BrokerCredential,
    namespace: Optional[InMemoryNamespace] = None
) -> BrokerAdapter:
    """
    Factory function to create a broker adapter based on configuration.

    Args:
        config: Broker configuration
        credential: Credential of the console session
        namespace: Shared namespace for the in-memory broker

    Returns:
        Broker adapter; use it as an async context manager

    Raises:
        InvalidCredentialError: If the connection string cannot be parsed
        InvalidRequestError: If the broker type is unknown

    Example:
        ```python
        async with create_broker(config, credential) as broker:
            queues = await broker.list_queues()
        ```
    """
    if config.broker_type == BrokerType.IN_MEMORY:
        return InMemoryBroker(config, namespace)

    elif config.broker_type == BrokerType.AZURE:
        return AzureServiceBusBroker(config, credential)

    else:
        raise InvalidRequestError(
            f"Unknown broker type: {config.broker_type}. "
            f"Supported types: {[t.value for t in BrokerType]}"
        )
