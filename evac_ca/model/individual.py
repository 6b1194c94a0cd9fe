"""Individuals (evacuees) of the cellular automaton."""

import math
from enum import Enum
from typing import Optional, TYPE_CHECKING

from .grid import CellKey, Direction8

if TYPE_CHECKING:
    from .potential import StaticPotential


class IndividualStatus(Enum):
    """Possible states for an individual."""
    UNALARMED = "unalarmed"
    ALARMED = "alarmed"
    SAFE = "safe"
    DEAD = "dead"
    EVACUATED = "evacuated"


# Statuses only ever move forward; dead and evacuated are terminal.
_TRANSITIONS = {
    IndividualStatus.UNALARMED: {IndividualStatus.ALARMED, IndividualStatus.SAFE,
                                 IndividualStatus.DEAD},
    IndividualStatus.ALARMED: {IndividualStatus.SAFE, IndividualStatus.DEAD},
    IndividualStatus.SAFE: {IndividualStatus.EVACUATED},
    IndividualStatus.DEAD: set(),
    IndividualStatus.EVACUATED: set(),
}


class DeathCause(Enum):
    EXIT_UNREACHABLE = "exit unreachable"
    NOT_ENOUGH_TIME = "not enough time"


class Individual:
    """
    Mutable simulation state of one evacuee.

    The individual does not hold its cell, only the cell's key; the
    automaton resolves it. Exactly one static potential is current at a time.
    """

    def __init__(self, individual_id: int,
                 relative_speed: float = 1.0,
                 reaction_time: float = 0.0,
                 assignment_type: str = "default"):
        if not 0.0 < relative_speed <= 1.0:
            raise ValueError(f"Relative speed must be within (0, 1], got {relative_speed}")
        if reaction_time < 0:
            raise ValueError(f"Reaction time must not be negative, got {reaction_time}")
        self.id = individual_id
        self.relative_speed = relative_speed
        self.reaction_time = reaction_time
        self.assignment_type = assignment_type
        self.cell: Optional[CellKey] = None
        self.static_potential: Optional["StaticPotential"] = None
        self.status = IndividualStatus.UNALARMED
        self.death_cause: Optional[DeathCause] = None
        self.safety_time: Optional[int] = None
        self.step_end_time = 0.0
        self.direction = Direction8.TOP

    def __repr__(self) -> str:
        return (f"Individual(id={self.id}, cell={self.cell}, "
                f"status={self.status.value})")

    def _transition(self, status: IndividualStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Individual {self.id}: illegal transition "
                             f"{self.status.value} -> {status.value}")
        self.status = status

    @property
    def is_alarmed(self) -> bool:
        return self.status is not IndividualStatus.UNALARMED

    @property
    def is_safe(self) -> bool:
        return self.status in (IndividualStatus.SAFE, IndividualStatus.EVACUATED)

    @property
    def is_dead(self) -> bool:
        return self.status is IndividualStatus.DEAD

    @property
    def is_evacuated(self) -> bool:
        return self.status is IndividualStatus.EVACUATED

    def alarm(self) -> None:
        if self.status is IndividualStatus.UNALARMED:
            self._transition(IndividualStatus.ALARMED)

    def set_safe(self, time: float) -> None:
        self._transition(IndividualStatus.SAFE)
        self.safety_time = int(math.ceil(time))

    def die(self, cause: DeathCause) -> None:
        self._transition(IndividualStatus.DEAD)
        self.death_cause = cause

    def set_evacuated(self) -> None:
        self._transition(IndividualStatus.EVACUATED)

    def clone(self) -> "Individual":
        """Copy of all attributes; the potential reference is shared."""
        other = Individual(self.id, self.relative_speed, self.reaction_time,
                           self.assignment_type)
        other.cell = self.cell
        other.static_potential = self.static_potential
        other.status = self.status
        other.death_cause = self.death_cause
        other.safety_time = self.safety_time
        other.step_end_time = self.step_end_time
        other.direction = self.direction
        return other
