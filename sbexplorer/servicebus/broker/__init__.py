"""
Broker Adapter Module

Pluggable broker adapters offering the peek / receive-with-lock / complete /
abandon capability the lifecycle engines are built on.

Author: Ayodele Oladeji
Date: 2026-10-13
"""

from .interface import (
    BrokerAdapter,
    BrokerConfig,
    BrokerReceiver,
    BrokerSender,
    BrokerType,
    EntityProperties,
    ReceivedMessage,
)
from .inmemory import InMemoryBroker, InMemoryNamespace
from .factory import create_broker

__all__ = [
    "BrokerAdapter",
    "BrokerConfig",
    "BrokerReceiver",
    "BrokerSender",
    "BrokerType",
    "EntityProperties",
    "ReceivedMessage",
    "InMemoryBroker",
    "InMemoryNamespace",
    "create_broker",
]
