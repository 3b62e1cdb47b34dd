from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from .config import DEFAULT_REFERENCE_PREFIX
from .errors import ValidationError

PENDING = "pending"
SUCCEEDED = "succeeded"
FAILED = "failed"
UNKNOWN = "unknown"

# Monnify references: letters, digits, dash and underscore
REFERENCE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{6,64}$")


def is_valid_reference(reference: Optional[str]) -> bool:
    return bool(reference) and bool(REFERENCE_PATTERN.match(reference))


class TransferReferenceGenerator:
    """
    Issues idempotency references for disbursements.

    uuid4 gives 122 random bits, so references do not collide across
    processes, retries or concurrent requests.
    """

    def __init__(self, prefix: str = DEFAULT_REFERENCE_PREFIX):
        self.prefix = prefix

    def new_reference(self) -> str:
        return f"{self.prefix}-{uuid4().hex}"

    def new_attempt(self) -> "TransferAttempt":
        return TransferAttempt(reference=self.new_reference())


@dataclass
class TransferAttempt:
    """One logical transfer attempt and the reference bound to it."""

    reference: str
    outcome: str = PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def mark(self, outcome: str) -> None:
        if outcome not in (PENDING, SUCCEEDED, FAILED, UNKNOWN):
            raise ValueError(f"unknown transfer outcome {outcome!r}")
        self.outcome = outcome

    def for_retry(self, generator: TransferReferenceGenerator) -> "TransferAttempt":
        """
        Return the attempt to use when retrying this one.

        Unknown (or never-sent) outcomes keep the reference so the processor
        can deduplicate; a confirmed failure starts a new attempt.
        """
        if self.outcome in (UNKNOWN, PENDING):
            return self
        if self.outcome == FAILED:
            return generator.new_attempt()
        raise ValidationError(f"Transfer {self.reference} already succeeded; it cannot be retried")


def resume_attempt(reference: str) -> TransferAttempt:
    """Rebuild an attempt from a caller-supplied reference."""
    if not is_valid_reference(reference):
        raise ValidationError(f"Invalid transfer reference {reference!r}")
    return TransferAttempt(reference=reference, outcome=UNKNOWN)
