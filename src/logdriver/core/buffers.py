"""Per-key double buffer."""

from __future__ import annotations

from dataclasses import dataclass, field

from logdriver.constants import SenderState
from logdriver.events import EventRecord


@dataclass
class BufferPair:
    """
    Active/staging buffers plus the sender state that routes between them.

    New records go to ``active`` while idle and to ``staging`` while a send
    is in flight. Not thread-safe on its own; ``LogStore`` serializes access.
    """

    active: list[EventRecord] = field(default_factory=list)
    staging: list[EventRecord] = field(default_factory=list)
    in_flight: int = 0

    @property
    def state(self) -> SenderState:
        return SenderState.SENDING if self.in_flight > 0 else SenderState.IDLE

    def append(self, record: EventRecord) -> None:
        if self.state is SenderState.SENDING:
            self.staging.append(record)
        else:
            self.active.append(record)

    def read_all(self) -> list[EventRecord]:
        return [*self.active, *self.staging]

    def clear(self) -> None:
        self.active = []
        self.staging = []

    def begin_send(self) -> list[EventRecord]:
        """Enter SENDING and return a snapshot of the active half."""
        self.in_flight += 1
        return list(self.active)

    def finish_send(self, sent: list[EventRecord], success: bool) -> None:
        """
        Leave SENDING (once no other send is in flight).

        On success the sent records are dropped and staging becomes the new
        active half. On failure nothing moves.
        """
        self.in_flight = max(0, self.in_flight - 1)
        if not success:
            return
        sent_ids = {id(record) for record in sent}
        remaining = [record for record in self.active if id(record) not in sent_ids]
        self.active = remaining + self.staging
        self.staging = []
