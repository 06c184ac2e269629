"""
Logging configuration for PhaseGate.

Provides structured JSON logging for review trails and debugging.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import List, Optional

# Context variable for review ID tracking
review_id_var: ContextVar[str] = ContextVar('review_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs one JSON object per record so review trails can be shipped to a
    log aggregation system.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        review_id = get_review_id()
        if review_id:
            log_data["review_id"] = review_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class ReviewLogger:
    """
    Specialized logger for review events.

    Records every classification, generation, gate verdict and role change so
    a review can be reconstructed from its log.
    """

    def __init__(self, name: str = "phasegate.review"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        fields = {"event_type": event_type, "review_id": get_review_id(), **kwargs}
        # stacklevel 3 attributes the record to the caller of the event method
        self._logger.log(level, "%s: %s", event_type, kwargs.get("message", ""),
                         extra={"extra_fields": fields}, stacklevel=3)

    def classification(self, unit_id: str, labels: List[str]) -> None:
        """Log the phase labels assigned to a unit."""
        self._log(
            logging.DEBUG,
            "CLASSIFICATION",
            unit_id=unit_id,
            labels=labels,
            message=f"{unit_id} classified as {','.join(labels)}"
        )

    def unclassified_unit(self, unit_id: str) -> None:
        """Log a unit no lexicon rule matched."""
        self._log(
            logging.WARNING,
            "UNCLASSIFIED_UNIT",
            unit_id=unit_id,
            message=f"{unit_id} unclassified, requires manual review"
        )

    def hypotheses_generated(self, count: int, truncated: int, unclassified: int) -> None:
        """Log a generation run, including how many candidates were cut."""
        level = logging.WARNING if truncated else logging.INFO
        self._log(
            level,
            "HYPOTHESES_GENERATED",
            count=count,
            truncated=truncated,
            unclassified=unclassified,
            message=f"{count} hypotheses generated, {truncated} deferred"
        )

    def gate_verdict(
        self,
        hypothesis_id: str,
        verdict: str,
        unknown: Optional[List[str]] = None,
        failed: Optional[List[str]] = None
    ) -> None:
        """Log a validation gate verdict."""
        level = logging.INFO if verdict == "VALID" else logging.WARNING
        self._log(
            level,
            "GATE_VERDICT",
            hypothesis_id=hypothesis_id,
            verdict=verdict,
            unknown=unknown or [],
            failed=failed or [],
            message=f"{hypothesis_id} {verdict}"
        )

    def finding_emitted(self, finding_id: str, severity: str, location: str) -> None:
        """Log an emitted finding."""
        self._log(
            logging.INFO,
            "FINDING_EMITTED",
            finding_id=finding_id,
            severity=severity,
            location=location,
            message=f"{finding_id} {severity} at {location}"
        )

    def finding_suppressed(self, hypothesis_id: str, reason: str) -> None:
        """Log a valid hypothesis that could not become a finding."""
        self._log(
            logging.ERROR,
            "FINDING_SUPPRESSED",
            hypothesis_id=hypothesis_id,
            reason=reason,
            message=f"{hypothesis_id} suppressed: {reason}"
        )

    def role_transition(self, session_id: str, from_role: Optional[str], to_role: str) -> None:
        """Log a role activation."""
        self._log(
            logging.INFO,
            "ROLE_TRANSITION",
            session_id=session_id,
            from_role=from_role,
            to_role=to_role,
            message=f"{from_role or 'none'} -> {to_role}"
        )

    def contradiction(self, session_id: str, contradiction_id: str, invariant: str, role: str) -> None:
        """Log a contradiction awaiting human resolution."""
        self._log(
            logging.WARNING,
            "CONTRADICTION",
            session_id=session_id,
            contradiction_id=contradiction_id,
            invariant=invariant,
            role=role,
            message=f"{role} contradicts invariant: {invariant}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    # stderr keeps CLI output on stdout parseable
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_review_id(review_id: Optional[str] = None) -> str:
    """
    Set the review ID for the current context.

    Args:
        review_id: Review ID to set, or None to generate one

    Returns:
        The review ID that was set
    """
    if review_id is None:
        review_id = f"review-{uuid.uuid4().hex[:12]}"
    review_id_var.set(review_id)
    return review_id


def get_review_id() -> str:
    """Get the current review ID."""
    return review_id_var.get()


# Global review logger instance
review_log = ReviewLogger()
