"""
Rules of the evacuation cellular automaton.

A rule is executed on a cell: it checks `applicable(cell)` and then
`apply(cell)`. Rules read and change the simulation only through the
EvacuationState they are bound to. Shared behavior lives in the module
level helpers.
"""

import math
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Sequence, Type, TYPE_CHECKING

import numpy as np

from ..config import ParameterSet
from .grid import Cell, Direction8
from .individual import DeathCause, Individual
from .potential import DynamicPotential, StaticPotential

if TYPE_CHECKING:
    from .automaton import EvacuationCellularAutomaton


class EvacuationState:
    """
    What a rule may see of, and do to, the running simulation.
    The scheduler owns the instance and advances `time_step`.
    """

    def __init__(self, automaton: "EvacuationCellularAutomaton",
                 parameters: ParameterSet, rng: np.random.Generator):
        self.automaton = automaton
        self.parameters = parameters
        self.rng = rng
        self.time_step = 0
        self._needed_time = 0

    @property
    def needed_time(self) -> int:
        return self._needed_time

    def set_needed_time(self, value: int) -> None:
        """Steps needed until every started movement is finished; only grows."""
        self._needed_time = max(self._needed_time, int(value))

    def move(self, from_cell: Cell, to_cell: Cell) -> None:
        self.automaton.move_individual(from_cell, to_cell)

    def swap(self, cell1: Cell, cell2: Cell) -> None:
        self.automaton.swap_individuals(cell1, cell2)

    def set_individual_dead(self, individual: Individual, cause: DeathCause) -> None:
        self.automaton.set_individual_dead(individual, cause)

    def set_individual_safe(self, individual: Individual) -> None:
        self.automaton.set_individual_safe(individual)

    def mark_for_removal(self, individual: Individual) -> None:
        self.automaton.mark_for_removal(individual)

    def increase_dynamic_potential(self, cell: Cell) -> None:
        self.automaton.dynamic_potential.increase(cell)

    def decrease_dynamic_potential(self, cell: Cell) -> None:
        self.automaton.dynamic_potential.decrease(cell)


class Rule(ABC):
    """Capability interface of all rules."""

    name = ""
    is_movement_rule = False

    def __init__(self):
        self._state: Optional[EvacuationState] = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def bind(self, state: EvacuationState) -> None:
        self._state = state

    @property
    def state(self) -> EvacuationState:
        if self._state is None:
            raise RuntimeError(f"{self!r} is not bound to a simulation.")
        return self._state

    def individual(self, cell: Cell) -> Optional[Individual]:
        return self.state.automaton.individual_at(cell)

    @abstractmethod
    def applicable(self, cell: Cell) -> bool:
        ...

    @abstractmethod
    def apply(self, cell: Cell) -> None:
        ...

    def execute(self, cell: Cell) -> None:
        if self.applicable(cell):
            self.apply(cell)


# ----------------------------------------------------------------------
# Helpers shared by rules


def reaction_time_elapsed(individual: Individual, time_step: int,
                          steps_per_second: float) -> bool:
    return time_step >= individual.reaction_time * steps_per_second


def is_diagonal_step(from_cell: Cell, to_cell: Cell) -> bool:
    return (from_cell.room_id == to_cell.room_id
            and abs(to_cell.x - from_cell.x) == 1 and abs(to_cell.y - from_cell.y) == 1)


def step_duration(individual: Individual, from_cell: Cell, to_cell: Cell) -> float:
    """Steps needed to cross from one cell into the next."""
    length = math.sqrt(2.0) if is_diagonal_step(from_cell, to_cell) else 1.0
    return length / (individual.relative_speed * to_cell.speed_factor)


def can_move_now(individual: Individual, time_step: int) -> bool:
    return individual.step_end_time <= time_step


def downhill_targets(automaton: "EvacuationCellularAutomaton", cell: Cell,
                     potential: StaticPotential, time: float) -> List[Cell]:
    """Free neighbors with a strictly smaller static potential."""
    here = potential.potential(cell)
    return [
        other for other in automaton.neighbors(cell, passable_only=True,
                                               free_only=True, time=time)
        if other.speed_factor > 0 and potential.has_valid_potential(other)
        and potential.potential(other) < here
    ]


def transition_probabilities(targets: Sequence[Cell], potential: StaticPotential,
                             dynamic: DynamicPotential, static_strength: float,
                             dynamic_strength: float) -> np.ndarray:
    """
    Burstedde floor field probabilities over the targets:
    P(j) ~ exp(-kS * S_j + kD * D_j), normalized with log-sum-exp.
    """
    scores = np.array([
        -static_strength * potential.potential(target)
        + dynamic_strength * dynamic.potential(target)
        for target in targets
    ], dtype=np.float64)
    # Subtract max for numerical stability: softmax(x) = softmax(x - max(x))
    exp_scores = np.exp(scores - np.max(scores))
    return exp_scores / np.sum(exp_scores)


def choose_target(targets: Sequence[Cell], probabilities: np.ndarray,
                  rng: np.random.Generator) -> Cell:
    if not targets:
        raise ValueError("Cannot select a target from an empty list.")
    if len(targets) == 1:
        return targets[0]
    return targets[int(rng.choice(len(targets), p=probabilities))]


# ----------------------------------------------------------------------
# Primary rules


class InitialPotentialShortestPathRule(Rule):
    """Assign the closest reachable exit; individuals without one die."""

    name = "initial_potential"

    def applicable(self, cell: Cell) -> bool:
        return self.individual(cell) is not None

    def apply(self, cell: Cell) -> None:
        individual = self.individual(cell)
        potential = self.state.automaton.min_potential_for(cell)
        if potential is None:
            self.state.set_individual_dead(individual, DeathCause.EXIT_UNREACHABLE)
        else:
            individual.static_potential = potential


class InitialPotentialRandomRule(Rule):
    """Assign a uniformly chosen reachable exit; individuals without one die."""

    name = "initial_potential_random"

    def applicable(self, cell: Cell) -> bool:
        individual = self.individual(cell)
        return individual is not None and individual.static_potential is None

    def apply(self, cell: Cell) -> None:
        individual = self.individual(cell)
        reachable = [p for p in self.state.automaton.static_potentials
                     if p.has_valid_potential(cell)]
        if not reachable:
            self.state.set_individual_dead(individual, DeathCause.EXIT_UNREACHABLE)
        else:
            individual.static_potential = reachable[int(self.state.rng.integers(len(reachable)))]


# ----------------------------------------------------------------------
# Loop rules


class ReactionRule(Rule):
    """Individuals become alarmed once their own reaction time has passed."""

    name = "reaction"

    def applicable(self, cell: Cell) -> bool:
        individual = self.individual(cell)
        return individual is not None and not individual.is_alarmed

    def apply(self, cell: Cell) -> None:
        individual = self.individual(cell)
        if reaction_time_elapsed(individual, self.state.time_step,
                                 self.state.automaton.steps_per_second):
            individual.alarm()


class ReactionRuleCompleteRoom(ReactionRule):
    """The first individual to react alarms everybody in the same room."""

    name = "reaction_room"

    def apply(self, cell: Cell) -> None:
        individual = self.individual(cell)
        room = self.state.automaton.room(cell.room_id)
        if room.alarmed:
            individual.alarm()
        elif reaction_time_elapsed(individual, self.state.time_step,
                                   self.state.automaton.steps_per_second):
            individual.alarm()
            room.alarmed = True


class SimpleMovementRule(Rule):
    """
    Moves alarmed individuals one cell downhill on their static potential.

    The target is drawn among free downhill neighbors with Burstedde
    probabilities. A move takes `step_duration` steps: the individual cannot
    move again before its step end time and the cell it left stays locked
    until then.
    """

    name = "movement"
    is_movement_rule = True

    def applicable(self, cell: Cell) -> bool:
        individual = self.individual(cell)
        return (individual is not None
                and individual.is_alarmed
                and not individual.is_dead
                and individual.static_potential is not None
                and not cell.is_exit
                and can_move_now(individual, self.state.time_step))

    def apply(self, cell: Cell) -> None:
        individual = self.individual(cell)
        state = self.state
        targets = downhill_targets(state.automaton, cell, individual.static_potential,
                                   state.time_step)
        if not targets:
            self.blocked(cell, individual)
            return
        probabilities = transition_probabilities(
            targets, individual.static_potential, state.automaton.dynamic_potential,
            state.parameters.static_strength, state.parameters.dynamic_strength)
        target = choose_target(targets, probabilities, state.rng)
        self.move(cell, target, individual)

    def blocked(self, cell: Cell, individual: Individual) -> None:
        """Called when no free downhill neighbor exists; the individual waits."""

    def _finish_step(self, from_cell: Cell, to_cell: Cell, individual: Individual) -> None:
        start = max(individual.step_end_time, float(self.state.time_step))
        individual.step_end_time = start + step_duration(individual, from_cell, to_cell)
        if from_cell.room_id == to_cell.room_id:
            individual.direction = Direction8.from_offset(to_cell.x - from_cell.x,
                                                          to_cell.y - from_cell.y)
        self.state.set_needed_time(math.ceil(individual.step_end_time))

    def move(self, from_cell: Cell, to_cell: Cell, individual: Individual) -> None:
        self.state.move(from_cell, to_cell)
        self._finish_step(from_cell, to_cell, individual)
        from_cell.occupied_until = individual.step_end_time
        self.state.increase_dynamic_potential(from_cell)


class SwapMovementRule(SimpleMovementRule):
    """
    Like SimpleMovementRule, but a blocked individual swaps places with a
    neighbor that wants to go the opposite way.
    """

    name = "swap_movement"

    def blocked(self, cell: Cell, individual: Individual) -> None:
        state = self.state
        potential = individual.static_potential
        here = potential.potential(cell)
        best = None
        for other_cell in state.automaton.neighbors(cell, passable_only=True):
            other = state.automaton.individual_at(other_cell)
            if other is None or other_cell.is_exit:
                continue
            if state.automaton.cuts_corner(cell, other_cell):
                continue
            if not potential.has_valid_potential(other_cell) or potential.potential(other_cell) >= here:
                continue
            if not self._wants_cell(other, other_cell, cell):
                continue
            if best is None or potential.potential(other_cell) < potential.potential(best):
                best = other_cell
        if best is None:
            return
        partner = state.automaton.individual_at(best)
        state.swap(cell, best)
        self._finish_step(cell, best, individual)
        self._finish_step(best, cell, partner)

    def _wants_cell(self, other: Individual, other_cell: Cell, cell: Cell) -> bool:
        theirs = other.static_potential
        return (other.is_alarmed and not other.is_safe
                and theirs is not None
                and can_move_now(other, self.state.time_step)
                and theirs.has_valid_potential(cell)
                and theirs.potential(cell) < theirs.potential(other_cell))


class SaveIndividualsRule(Rule):
    """Individuals standing on an exit or in a safe area become safe."""

    name = "save"

    def applicable(self, cell: Cell) -> bool:
        individual = self.individual(cell)
        return (individual is not None and cell.is_safe
                and not individual.is_safe and not individual.is_dead)

    def apply(self, cell: Cell) -> None:
        self.state.set_individual_safe(self.individual(cell))


class EvacuateIndividualsRule(Rule):
    """Safe individuals on exit cells leave the building after the step."""

    name = "evacuate"

    def applicable(self, cell: Cell) -> bool:
        individual = self.individual(cell)
        return (individual is not None and cell.is_exit and individual.is_safe
                and not self.state.automaton.is_marked(individual))

    def apply(self, cell: Cell) -> None:
        self.state.mark_for_removal(self.individual(cell))


RULES: Dict[str, Type[Rule]] = {
    rule.name: rule for rule in (
        InitialPotentialShortestPathRule,
        InitialPotentialRandomRule,
        ReactionRule,
        ReactionRuleCompleteRoom,
        SimpleMovementRule,
        SwapMovementRule,
        SaveIndividualsRule,
        EvacuateIndividualsRule,
    )
}


def create_rule(name: str) -> Rule:
    try:
        return RULES[name]()
    except KeyError:
        raise ValueError(f"Unknown rule '{name}', expected one of {sorted(RULES)}") from None


class RuleSet:
    """
    Primary rules run once per individual before the first step, loop rules
    once per individual per step. At most one movement rule is allowed.
    """

    def __init__(self):
        self._primary: List[Rule] = []
        self._loop: List[Rule] = []
        self._movement_rule: Optional[Rule] = None

    @classmethod
    def from_names(cls, primary: Sequence[str], loop: Sequence[str]) -> "RuleSet":
        rule_set = cls()
        for name in primary:
            rule_set.add(create_rule(name), primary=True, loop=False)
        for name in loop:
            rule_set.add(create_rule(name), primary=False, loop=True)
        return rule_set

    def add(self, rule: Rule, primary: bool = False, loop: bool = True) -> None:
        if rule.is_movement_rule:
            if self._movement_rule is not None and self._movement_rule is not rule:
                raise ValueError("A rule set can contain only one movement rule.")
            self._movement_rule = rule
        if primary:
            self._primary.append(rule)
        if loop:
            self._loop.append(rule)

    @property
    def movement_rule(self) -> Optional[Rule]:
        return self._movement_rule

    @property
    def primary_rules(self) -> List[Rule]:
        return list(self._primary)

    @property
    def loop_rules(self) -> List[Rule]:
        return list(self._loop)

    def __iter__(self) -> Iterator[Rule]:
        seen = set()
        for rule in self._primary + self._loop:
            if id(rule) not in seen:
                seen.add(id(rule))
                yield rule

    def __len__(self) -> int:
        return sum(1 for _ in self)
