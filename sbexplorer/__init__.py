"""
SB Explorer: Service Bus Operator Console Backend

Inspect and manipulate messages held in Service Bus queues, topic
subscriptions and their dead-letter sub-queues.
"""

__version__ = "0.1.0"
__author__ = "Ayodele Oladeji"

from .servicebus.console import ExplorerConsole

__all__ = ["ExplorerConsole", "__version__"]
