from __future__ import annotations

from dataclasses import dataclass

from jobboard.types import ApplicationStatus

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "new": frozenset({"reviewing", "rejected"}),
    "reviewing": frozenset({"shortlisted", "rejected"}),
    "shortlisted": frozenset({"interview", "rejected"}),
    "interview": frozenset({"offer", "rejected"}),
    "offer": frozenset({"hired", "rejected"}),
    "hired": frozenset(),
    "rejected": frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)


@dataclass(slots=True)
class ApplicationPipeline:
    status: ApplicationStatus

    def can_move_to(self, target: str) -> bool:
        if target not in ALLOWED_TRANSITIONS:
            return False
        if target == self.status:
            return True
        return target in ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def next_statuses(self) -> list[str]:
        return sorted(ALLOWED_TRANSITIONS.get(self.status, frozenset()))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
