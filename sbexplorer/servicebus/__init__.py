"""
Service Bus message lifecycle engine.

Entity inventory, paginated peek, selective/bulk completion and
resubmission over a lock-then-match broker protocol.

Author: Ayodele Oladeji
Date: 2026-10-15
"""

from .console import ExplorerConsole, SessionRegistry
from .config import EngineSettings, ExplorerConfig, load_explorer_config

__all__ = [
    "ExplorerConsole",
    "SessionRegistry",
    "EngineSettings",
    "ExplorerConfig",
    "load_explorer_config",
]
