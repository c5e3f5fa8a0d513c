from __future__ import annotations

from enum import StrEnum
from typing import Protocol

from statemachine import State, StateMachine


class SessionStatus(StrEnum):
    pending = "pending"
    running = "running"
    terminated = "terminated"
    exhausted = "exhausted"
    failed = "failed"
    cancelled = "cancelled"


class HasStatus(Protocol):
    status: SessionStatus


class SessionFSM(StateMachine):
    """Lifecycle guard for one session.

    - pending -> running -> terminated | exhausted | failed | cancelled
    - exhausted -> running (resume with a fresh tick budget)

    The scheduler drives the events; the FSM only decides which transitions are legal.
    """

    pending = State(SessionStatus.pending.value, value=SessionStatus.pending.value, initial=True)
    running = State(SessionStatus.running.value, value=SessionStatus.running.value)
    exhausted = State(SessionStatus.exhausted.value, value=SessionStatus.exhausted.value)
    terminated = State(SessionStatus.terminated.value, value=SessionStatus.terminated.value, final=True)
    failed = State(SessionStatus.failed.value, value=SessionStatus.failed.value, final=True)
    cancelled = State(SessionStatus.cancelled.value, value=SessionStatus.cancelled.value, final=True)

    begin = pending.to(running) | exhausted.to(running)
    terminate = running.to(terminated)
    exhaust = running.to(exhausted)
    fail = running.to(failed)
    cancel = running.to(cancelled) | pending.to(cancelled)

    def __init__(self, holder: HasStatus):
        self.holder = holder
        super().__init__(start_value=holder.status.value)

    def sync_status_to_holder(self) -> None:
        self.holder.status = SessionStatus(str(self.current_state.value))

    @property
    def resumable(self) -> bool:
        return self.current_state == self.exhausted
