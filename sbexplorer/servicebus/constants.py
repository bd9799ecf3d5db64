"""
Explorer Constants

Centralized constants for engine tuning defaults, naming rules and headers.

Author: Ayodele Oladeji
Date: 2026-10-12
"""

# Peek paging
DEFAULT_PAGE_SIZE = 100

# Selective completion (delete / resubmit selected)
DEFAULT_SELECTIVE_BATCH_SIZE = 32
DEFAULT_SELECTIVE_MAX_ATTEMPTS = 3
DEFAULT_RECEIVE_WAIT_SECONDS = 5.0
DEFAULT_RETRY_BACKOFF_SECONDS = 1.0

# Drain mode (delete / resubmit all)
DEFAULT_DRAIN_BATCH_SIZE = 20
DEFAULT_DRAIN_BATCH_DELAY_SECONDS = 0.1

# Resubmission
RESUBMIT_MESSAGE_ID_PREFIX = "resubmit-"

# In-memory broker defaults
DEFAULT_LOCK_DURATION = 60
DEFAULT_MAX_DELIVERY_COUNT = 10

# Entity naming
MAX_QUEUE_NAME_LENGTH = 260
MAX_TOPIC_NAME_LENGTH = 260
MAX_SUBSCRIPTION_NAME_LENGTH = 50

# Entity status reported when the broker does not supply one
ENTITY_STATUS_ACTIVE = "Active"

# HTTP
SESSION_HEADER = "x-explorer-session"
CORRELATION_HEADER = "x-correlation-id"

# Error message templates
ERROR_NO_CONNECTION = "No connection string provided"
ERROR_EMPTY_TARGET_SET = "Either sequenceNumbers or all=true must be supplied"
ERROR_CONFLICTING_TARGETS = "sequenceNumbers and all=true are mutually exclusive"
