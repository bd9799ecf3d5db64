"""
SB Explorer core infrastructure.
"""

from .logging_config import setup_logging, SensitiveDataFilter, redact

__all__ = ["setup_logging", "SensitiveDataFilter", "redact"]
