"""
tenant_authz.auth.audit

Best-effort delivery of login audit events to an external sink.

Responsibilities:
- Define the `AuditSink` boundary (`emit` must never block or raise).
- `LogAuditSink`: write events as structured log lines.
- `QueueAuditSink`: hand events to a bounded queue drained by a background task,
  dropping (with a warning) when the queue is full.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from tenant_authz.observability.logging import get_logger

log = get_logger(__name__)


class LoginOutcome(enum.StrEnum):
    success = "SUCCESS"
    failure = "FAILURE"


@dataclass(frozen=True, slots=True)
class LoginEvent:
    domain: str
    username: str
    outcome: LoginOutcome
    subject_id: str | None = None
    # Internal-only failure reason (unknown_domain, unknown_subject, bad_password, subject_disabled).
    reason: str | None = None
    client_ip: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


class AuditSink(Protocol):
    def emit(self, event: LoginEvent) -> None: ...


class LogAuditSink:
    def emit(self, event: LoginEvent) -> None:
        payload = asdict(event)
        payload["occurred_at"] = event.occurred_at.isoformat()
        log.info("login_audit", **payload)


class QueueAuditSink:
    def __init__(self, delegate: AuditSink, *, maxsize: int = 1024) -> None:
        self._delegate = delegate
        self._queue: asyncio.Queue[LoginEvent] = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task[None] | None = None

    def emit(self, event: LoginEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            log.warning("login_audit_dropped", domain=event.domain, outcome=str(event.outcome))

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._drain(), name="login-audit-drain")

    async def stop(self) -> None:
        # Flush what is already queued, then stop the worker.
        await self._queue.join()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self._delegate.emit(event)
            except Exception:
                log.exception("login_audit_delivery_failed")
            finally:
                self._queue.task_done()


# --- Module Notes -----------------------------------------------------------
# Persisting login logs is the embedding service's concern; plug a sink that writes to
# its store as the `QueueAuditSink` delegate so the authentication path never waits on it.
