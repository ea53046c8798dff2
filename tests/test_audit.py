"""
tests.test_audit

Login audit sinks: queued delivery never blocks the caller and drops when full.
"""

from __future__ import annotations

import pytest

from tenant_authz.auth.audit import LoginEvent, LoginOutcome, LogAuditSink, QueueAuditSink


class _Collect:
    def __init__(self) -> None:
        self.events: list[LoginEvent] = []

    def emit(self, event: LoginEvent) -> None:
        self.events.append(event)


def _event(username: str) -> LoginEvent:
    return LoginEvent(domain="d1", username=username, outcome=LoginOutcome.success)


@pytest.mark.asyncio
async def test_queue_sink_delivers_on_stop() -> None:
    target = _Collect()
    sink = QueueAuditSink(target)
    sink.start()

    sink.emit(_event("a"))
    sink.emit(_event("b"))
    await sink.stop()

    assert [e.username for e in target.events] == ["a", "b"]


@pytest.mark.asyncio
async def test_queue_sink_drops_when_full() -> None:
    target = _Collect()
    sink = QueueAuditSink(target, maxsize=1)

    sink.emit(_event("kept"))
    sink.emit(_event("dropped"))
    sink.start()
    await sink.stop()

    assert [e.username for e in target.events] == ["kept"]


@pytest.mark.asyncio
async def test_queue_sink_survives_a_failing_delegate() -> None:
    class Flaky:
        def __init__(self) -> None:
            self.calls = 0

        def emit(self, event: LoginEvent) -> None:
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("transient")

    target = Flaky()
    sink = QueueAuditSink(target)
    sink.start()
    sink.emit(_event("a"))
    sink.emit(_event("b"))
    await sink.stop()

    assert target.calls == 2


def test_log_sink_never_raises() -> None:
    LogAuditSink().emit(_event("a"))
