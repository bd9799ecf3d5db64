"""
Explorer Audit Logger

JSON-formatted audit trail of destructive console operations (delete,
resubmit) and session connects.

Author: Ayodele Oladeji
Date: 2026-10-14
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from .models import BatchOperationResult, EntityRef


class AuditLogger:
    """
    Audit logger for console operations.

    Every event is one JSON document. Events always go to the
    ``sbexplorer.audit`` logger; with ``log_file`` they are also appended
    to that file.
    """

    def __init__(self, log_file: Optional[str] = None):
        """
        Initialize audit logger.

        Args:
            log_file: Path to audit log file (None = logger only)
        """
        self.log_file = log_file
        self.logger = logging.getLogger("sbexplorer.audit")
        self.logger.setLevel(logging.INFO)

        if log_file and not any(
            isinstance(h, logging.FileHandler) and h.baseFilename.endswith(log_file)
            for h in self.logger.handlers
        ):
            handler = logging.FileHandler(log_file)
            handler.setLevel(logging.INFO)
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def _log_event(self, event_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Log an audit event.

        Args:
            event_data: Event data to log

        Returns:
            The logged event, with timestamp and version added
        """
        event_data["timestamp"] = datetime.now(timezone.utc).isoformat()
        event_data["version"] = "1.0"
        self.logger.info(json.dumps(event_data, default=str))
        return event_data

    def log_session_connected(self, session_id: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        """
        Log a console session connect.

        Args:
            session_id: Console session identifier
            namespace: Broker endpoint host, never the key
        """
        return self._log_event({
            "event_type": "session_connected",
            "session_id": session_id,
            "namespace": namespace,
        })

    def log_batch_operation(
        self,
        entity: EntityRef,
        result: BatchOperationResult,
        all_messages: bool,
        session_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Log a delete or resubmit operation with its per-message outcome.

        Args:
            entity: Target entity
            result: Aggregated operation result
            all_messages: True for drain mode
            session_id: Console session identifier
        """
        return self._log_event({
            "event_type": f"messages_{result.operation}",
            "entity_type": entity.kind.value,
            "entity_name": entity.path,
            "sub_queue": result.sub_queue.value,
            "all_messages": all_messages,
            "session_id": session_id,
            "outcome": result.outcome.value,
            "requested_count": result.requested_count,
            "succeeded": sorted(result.succeeded_ids),
            "failed": {str(k): v for k, v in sorted(result.failed_ids.items())},
            "not_found": sorted(result.not_found_ids),
        })
