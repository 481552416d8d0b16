"""Append-only usage log for calls to external metered services.

Each call to the text-generation provider is recorded as one
``api_usage_logs`` row (endpoint, model, tokens, latency, outcome) for cost
tracking.  Rows are never updated.

Recording is best-effort: ``record_usage()`` never raises.  A failed log
write is reported through the logger and the operation being audited carries
on with its own outcome.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from leadsradar.db.models import ApiUsageLog, utcnow
from leadsradar.db.session import get_session

logger = logging.getLogger(__name__)


@dataclass
class UsageEntry:
    """One external-service invocation."""

    user_id: uuid.UUID
    endpoint: str
    method: str
    status_code: int
    success: bool
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    model: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    error_type: Optional[str] = None
    latency_ms: Optional[int] = None


async def record_usage(entry: UsageEntry) -> None:
    """Insert ``entry`` into the usage log.  Failures are logged, never raised."""
    try:
        async with get_session() as session:
            session.add(
                ApiUsageLog(
                    id=uuid.uuid4(),
                    user_id=entry.user_id,
                    request_id=entry.request_id,
                    endpoint=entry.endpoint,
                    method=entry.method,
                    status_code=entry.status_code,
                    model=entry.model,
                    prompt_tokens=entry.prompt_tokens,
                    completion_tokens=entry.completion_tokens,
                    total_tokens=entry.total_tokens,
                    success=entry.success,
                    error_type=entry.error_type,
                    latency_ms=entry.latency_ms,
                    created_at=utcnow(),
                )
            )
            await session.commit()
    except Exception:
        logger.warning(
            "Usage log write failed: endpoint=%s request_id=%s",
            entry.endpoint,
            entry.request_id,
            exc_info=True,
        )
