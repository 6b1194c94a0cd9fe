"""Step scheduler for the evacuation cellular automaton."""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

import numpy as np

from ..config import ParameterSet
from .automaton import EvacuationCellularAutomaton
from .individual import DeathCause, Individual
from .recorder import ActionRecorder
from .rules import EvacuationState, RuleSet
from .state import IndividualSnapshot, RoomSnapshot, SimulationState

logger = logging.getLogger(__name__)


class IndividualOrder(Enum):
    """Order in which individuals are handed to the rules within a step."""
    IN_ORDER = "in_order"
    RANDOM = "random"
    FRONT_TO_BACK = "front_to_back"
    BACK_TO_FRONT = "back_to_front"


def _distance_to_exit(automaton: EvacuationCellularAutomaton, individual: Individual) -> float:
    potential = individual.static_potential
    cell = automaton.cell_of(individual)
    if potential is None or not potential.has_valid_potential(cell):
        return math.inf
    return potential.potential(cell)


def order_individuals(automaton: EvacuationCellularAutomaton, order: IndividualOrder,
                      rng: np.random.Generator) -> List[Individual]:
    """
    Individuals in processing order. Distance orders use the value of the
    individual's static potential at its cell; individuals without one go last.
    """
    individuals = automaton.individuals
    if order is IndividualOrder.IN_ORDER:
        return individuals
    if order is IndividualOrder.RANDOM:
        return [individuals[i] for i in rng.permutation(len(individuals))]

    distances: Dict[int, float] = {i.id: _distance_to_exit(automaton, i) for i in individuals}
    if order is IndividualOrder.FRONT_TO_BACK:
        return sorted(individuals, key=lambda i: distances[i.id])
    if order is IndividualOrder.BACK_TO_FRONT:
        return sorted(individuals, key=lambda i: (math.isinf(distances[i.id]), -distances[i.id]))
    raise AssertionError(f"Unhandled order {order}")


@dataclass
class EvacuationProblem:
    """A ready automaton together with the rules and parameters to run it."""
    automaton: EvacuationCellularAutomaton
    rule_set: RuleSet
    parameters: ParameterSet
    step_limit: int


@dataclass(frozen=True)
class EvacuationResult:
    steps: int
    seconds: float
    initial_individuals: int
    evacuated: int
    safe: int
    dead_exit_unreachable: int
    dead_not_enough_time: int

    @property
    def dead(self) -> int:
        return self.dead_exit_unreachable + self.dead_not_enough_time


class EvacuationSimulation:
    """
    Drives one run: initialize() once, step() repeatedly until
    is_finished(), then terminate().

    Implements:
    1. Binding of rules to the simulation state
    2. Primary rules before the first step
    3. Loop rules per individual and step, in the configured order
    4. Batch evacuation and dynamic potential update after every step
    5. Termination, where stragglers die for lack of time
    """

    def __init__(self, problem: EvacuationProblem,
                 order: IndividualOrder = IndividualOrder.IN_ORDER,
                 seed: Optional[int] = None,
                 recorder: Optional[ActionRecorder] = None,
                 progress_callback: Optional[Callable[[float], None]] = None):
        if problem.step_limit < 0:
            raise ValueError(f"Step limit must not be negative, got {problem.step_limit}")
        self.problem = problem
        self.automaton = problem.automaton
        self.order = order
        self.rng = np.random.default_rng(seed)
        if recorder is not None:
            self.automaton.recorder = recorder
        self.progress_callback = progress_callback

        self.state = EvacuationState(self.automaton, problem.parameters, self.rng)
        self.current_step = 0
        self._initialized = False
        self._terminated = False

    @staticmethod
    def _active(individual: Individual) -> bool:
        return not (individual.is_dead or individual.is_evacuated)

    def _apply_rules(self, rules) -> None:
        for individual in order_individuals(self.automaton, self.order, self.rng):
            for rule in rules:
                if not self._active(individual):
                    break
                # Re-read the cell: a previous rule may have moved the individual.
                rule.execute(self.automaton.cell_of(individual))

    def initialize(self) -> None:
        if self._initialized:
            raise RuntimeError("Simulation has already been initialized.")
        for rule in self.problem.rule_set:
            rule.bind(self.state)
        self.automaton.start()
        self.state.time_step = 0
        self._apply_rules(self.problem.rule_set.primary_rules)
        self.automaton.remove_marked_individuals()
        self._initialized = True
        logger.info("Initialized simulation with %d individuals (%d unable to reach an exit)",
                    self.automaton.initial_individual_count,
                    self.automaton.dead_count(DeathCause.EXIT_UNREACHABLE))

    def step(self) -> SimulationState:
        """
        Execute one discrete time step.

        1. Apply loop rules to every individual
        2. Evacuate individuals marked during the step
        3. Update the dynamic potential
        4. Advance the recorder and report progress
        5. Return current state snapshot
        """
        if not self._initialized:
            raise RuntimeError("Simulation must be initialized before stepping.")
        if self._terminated:
            raise RuntimeError("Simulation has already terminated.")

        self.state.time_step = self.current_step
        self._apply_rules(self.problem.rule_set.loop_rules)
        self.current_step += 1

        self.automaton.remove_marked_individuals()
        parameters = self.problem.parameters
        self.automaton.update_dynamic_potential(parameters.probability_dynamic_increase,
                                                parameters.probability_dynamic_decrease,
                                                self.rng)
        self.automaton.recorder.next_timestep()

        progress = self.progress
        if self.progress_callback is not None:
            self.progress_callback(progress)
        logger.debug("Step %d: %d not safe, %d evacuated, progress %.2f",
                     self.current_step, self.automaton.not_safe_count,
                     len(self.automaton.evacuated_individuals), progress)
        return self._create_state_snapshot()

    @property
    def needed_time(self) -> int:
        return self.state.needed_time

    @property
    def progress(self) -> float:
        """Larger of the share of individuals safe and the share of steps used."""
        initial = self.automaton.initial_individual_count
        individual_progress = 1.0 - self.automaton.not_safe_count / initial if initial > 0 else 1.0
        limit = self.problem.step_limit
        time_progress = self.current_step / limit if limit > 0 else 1.0
        return min(1.0, max(individual_progress, time_progress))

    def is_finished(self) -> bool:
        """Check if simulation should terminate."""
        return (self.current_step >= self.problem.step_limit or
                (self.automaton.not_safe_count == 0 and self.current_step > self.needed_time))

    def terminate(self) -> EvacuationResult:
        """Kill everybody who is not safe yet and stop the automaton."""
        if self._terminated:
            raise RuntimeError("Simulation has already terminated.")
        for individual in self.automaton.individuals:
            if not individual.is_safe:
                self.automaton.set_individual_dead(individual, DeathCause.NOT_ENOUGH_TIME)
        self.automaton.stop()
        self._terminated = True
        result = self.get_result()
        logger.info("Simulation finished after %d steps: %d evacuated, %d dead",
                    result.steps, result.evacuated, result.dead)
        return result

    def run(self) -> EvacuationResult:
        """Initialize if needed, step until finished and terminate."""
        if not self._initialized:
            self.initialize()
        while not self.is_finished():
            self.step()
        return self.terminate()

    def _create_state_snapshot(self) -> SimulationState:
        """Create immutable snapshot of current simulation state."""
        automaton = self.automaton
        everybody = (automaton.individuals + automaton.evacuated_individuals
                     + automaton.dead_individuals)
        individual_snapshots = [
            IndividualSnapshot(
                individual_id=i.id,
                room_id=i.cell.room_id,
                x=i.cell.x,
                y=i.cell.y,
                status=i.status.value
            )
            for i in sorted(everybody, key=lambda i: i.id)
        ]
        room_snapshots = [
            RoomSnapshot(
                room_id=room.id,
                name=room.name,
                occupants=len(room.occupants),
                cells=room.cell_count(),
                alarmed=room.alarmed
            )
            for room in automaton.rooms
        ]

        active = automaton.individual_count
        metrics = {
            'active': active,
            'safe': active - automaton.not_safe_count,
            'not_safe': automaton.not_safe_count,
            'evacuated': len(automaton.evacuated_individuals),
            'dead': automaton.dead_count(),
            'progress': self.progress,
        }

        return SimulationState(
            step=self.current_step,
            individuals=individual_snapshots,
            metrics=metrics,
            rooms=room_snapshots
        )

    def get_result(self) -> EvacuationResult:
        automaton = self.automaton
        return EvacuationResult(
            steps=self.current_step,
            seconds=self.current_step * automaton.seconds_per_step,
            initial_individuals=automaton.initial_individual_count,
            evacuated=len(automaton.evacuated_individuals),
            safe=sum(1 for i in automaton.individuals if i.is_safe),
            dead_exit_unreachable=automaton.dead_count(DeathCause.EXIT_UNREACHABLE),
            dead_not_enough_time=automaton.dead_count(DeathCause.NOT_ENOUGH_TIME),
        )
