"""Status transition tables for every workflow record.

Each record kind owns one :class:`StateMachine`. Services call
``ensure`` before mutating ``status`` so that an unreachable change is
rejected with ``INVALID_TRANSITION`` before anything is written.
"""
from __future__ import annotations

from enum import Enum

from supervision.core.exceptions import InvalidTransitionError
from supervision.models.defense_session import DefenseSessionStatus
from supervision.models.pre_thesis import PreThesisStatus
from supervision.models.thesis import ThesisStatus
from supervision.models.thesis_proposal import ProposalStatus
from supervision.models.thesis_registration import RegistrationStatus
from supervision.models.topic import ApplicationStatus


class StateMachine:
    def __init__(self, name: str, transitions: dict[Enum, set[Enum]]) -> None:
        self.name = name
        self.transitions = {state: frozenset(targets) for state, targets in transitions.items()}

    def targets(self, current: Enum) -> frozenset[Enum]:
        return self.transitions.get(current, frozenset())

    def can(self, current: Enum, target: Enum) -> bool:
        return target in self.targets(current)

    def is_terminal(self, status: Enum) -> bool:
        return not self.targets(status)

    def ensure(self, current: Enum, target: Enum, *, code: str | None = None) -> None:
        if self.can(current, target):
            return
        if self.is_terminal(current):
            message = f"{self.name} is already {current.value} and can no longer change"
        else:
            message = f"{self.name} cannot move from {current.value} to {target.value}"
        raise InvalidTransitionError(
            message,
            code=code,
            details={"record": self.name, "current": current.value, "requested": target.value},
        )


TOPIC_APPLICATION = StateMachine(
    "Topic application",
    {
        ApplicationStatus.pending: {
            ApplicationStatus.accepted,
            ApplicationStatus.rejected,
            ApplicationStatus.cancelled,
        },
        ApplicationStatus.accepted: {ApplicationStatus.cancelled},
    },
)

THESIS_PROPOSAL = StateMachine(
    "Thesis proposal",
    {
        ProposalStatus.submitted: {
            ProposalStatus.accepted,
            ProposalStatus.rejected,
            ProposalStatus.cancelled,
        },
        ProposalStatus.accepted: {ProposalStatus.cancelled},
    },
)

THESIS_REGISTRATION = StateMachine(
    "Thesis registration",
    {
        RegistrationStatus.pending_approval: {
            RegistrationStatus.approved,
            RegistrationStatus.rejected,
            RegistrationStatus.cancelled,
        },
    },
)

PRE_THESIS = StateMachine(
    "Pre-thesis",
    {
        PreThesisStatus.in_progress: {PreThesisStatus.completed, PreThesisStatus.cancelled},
    },
)

THESIS = StateMachine(
    "Thesis",
    {
        ThesisStatus.draft: {ThesisStatus.in_progress, ThesisStatus.cancelled},
        ThesisStatus.in_progress: {ThesisStatus.defense_scheduled, ThesisStatus.cancelled},
        ThesisStatus.defense_scheduled: {ThesisStatus.defense_completed, ThesisStatus.cancelled},
        ThesisStatus.defense_completed: {ThesisStatus.completed, ThesisStatus.cancelled},
    },
)

DEFENSE_SESSION = StateMachine(
    "Defense session",
    {
        DefenseSessionStatus.scheduled: {DefenseSessionStatus.completed, DefenseSessionStatus.cancelled},
    },
)

# Statuses from which a thesis accepts committee assignments.
ASSIGNABLE_THESIS_STATUSES = frozenset(
    {
        ThesisStatus.in_progress,
        ThesisStatus.defense_scheduled,
        ThesisStatus.defense_completed,
    }
)


class Decision(str, Enum):
    accepted = "accepted"
    rejected = "rejected"
