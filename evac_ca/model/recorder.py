"""
Recording of simulation runs.

When recording starts, the recorder deep-clones the initial configuration
and keeps two identity maps (live cell -> cloned cell, live potential ->
cloned potential). Every recorded action is translated through the cell map,
so a recording never references the live simulation and can be replayed
from scratch.
"""

import logging
from dataclasses import dataclass
from typing import (TYPE_CHECKING, Any, Dict, Iterator, List, Optional,
                    Sequence, Tuple)

from .grid import Cell, Room
from .individual import DeathCause, Individual
from .potential import DynamicPotential, Potential, StaticPotential

if TYPE_CHECKING:
    from .automaton import AutomatonState, EvacuationCellularAutomaton

logger = logging.getLogger(__name__)


class ActionMismatchError(ValueError):
    """An action references a cell that is not part of the recorded configuration."""


def _adopt_cell(cell: Cell, cell_map: Dict[Cell, Cell]) -> Cell:
    try:
        return cell_map[cell]
    except KeyError:
        raise ActionMismatchError(f"Cell {cell.key} is not in the recorded configuration") from None


@dataclass(frozen=True)
class MoveAction:
    from_cell: Cell
    to_cell: Cell
    individual_id: int

    def adopt(self, cell_map: Dict[Cell, Cell]) -> "MoveAction":
        return MoveAction(_adopt_cell(self.from_cell, cell_map),
                          _adopt_cell(self.to_cell, cell_map), self.individual_id)

    def execute(self, automaton: "EvacuationCellularAutomaton") -> None:
        automaton.move_individual(self.from_cell, self.to_cell)


@dataclass(frozen=True)
class SwapAction:
    cell1: Cell
    cell2: Cell

    def adopt(self, cell_map: Dict[Cell, Cell]) -> "SwapAction":
        return SwapAction(_adopt_cell(self.cell1, cell_map), _adopt_cell(self.cell2, cell_map))

    def execute(self, automaton: "EvacuationCellularAutomaton") -> None:
        automaton.swap_individuals(self.cell1, self.cell2)


@dataclass(frozen=True)
class ExitAction:
    cell: Cell
    individual_id: int

    def adopt(self, cell_map: Dict[Cell, Cell]) -> "ExitAction":
        return ExitAction(_adopt_cell(self.cell, cell_map), self.individual_id)

    def execute(self, automaton: "EvacuationCellularAutomaton") -> None:
        individual = automaton.individual(self.individual_id)
        # Reaching safety is not an action of its own; leaving implies it.
        if not individual.is_safe:
            automaton.set_individual_safe(individual)
        automaton.set_individual_evacuated(individual)


@dataclass(frozen=True)
class DieAction:
    cell: Cell
    cause: DeathCause
    individual_id: int

    def adopt(self, cell_map: Dict[Cell, Cell]) -> "DieAction":
        return DieAction(_adopt_cell(self.cell, cell_map), self.cause, self.individual_id)

    def execute(self, automaton: "EvacuationCellularAutomaton") -> None:
        automaton.set_individual_dead(automaton.individual(self.individual_id), self.cause)


@dataclass(frozen=True)
class StateChangedAction:
    state: "AutomatonState"

    def adopt(self, cell_map: Dict[Cell, Cell]) -> "StateChangedAction":
        return self

    def execute(self, automaton: "EvacuationCellularAutomaton") -> None:
        from .automaton import AutomatonState

        if self.state is AutomatonState.RUNNING:
            automaton.start()
        elif self.state is AutomatonState.FINISHED:
            automaton.stop()


@dataclass
class InitialConfiguration:
    """Everything needed to rebuild an automaton before the first step."""
    floors: List[str]
    rooms: List[Room]
    individuals: List[Individual]
    static_potentials: List[StaticPotential]
    dynamic_potential: DynamicPotential
    absolute_max_speed: float


def clone_configuration(config: InitialConfiguration
                        ) -> Tuple[InitialConfiguration, Dict[Cell, Cell], Dict[Potential, Potential]]:
    """
    Deep-clone a configuration.

    Returns the clone, the cell identity map and the potential identity map.
    Nothing reachable from the clone is shared with the original.
    """
    cell_map: Dict[Cell, Cell] = {}
    potential_map: Dict[Potential, Potential] = {}

    cloned_rooms = []
    for room in config.rooms:
        clone = Room(room.id, room.floor_id, room.width, room.height,
                     room.x_offset, room.y_offset, room.name)
        clone.alarmed = room.alarmed
        for cell in room.all_cells():
            cell_clone = cell.copy()
            clone.set_cell(cell_clone)
            cell_clone.occupant = cell.occupant
            cell_map[cell] = cell_clone
        clone.occupants = set(room.occupants)
        cloned_rooms.append(clone)

    # Door links are stored as keys, which are identical in the clone.
    for original, cell_clone in cell_map.items():
        if original.door_targets:
            cell_clone.door_targets = list(original.door_targets)

    cloned_statics = []
    for potential in config.static_potentials:
        potential_clone = potential.clone()
        potential_map[potential] = potential_clone
        cloned_statics.append(potential_clone)
    dynamic_clone = config.dynamic_potential.clone()
    potential_map[config.dynamic_potential] = dynamic_clone

    cloned_individuals = []
    for individual in config.individuals:
        individual_clone = individual.clone()
        if individual.static_potential is not None:
            individual_clone.static_potential = potential_map.get(individual.static_potential)
        cloned_individuals.append(individual_clone)

    clone = InitialConfiguration(
        floors=list(config.floors),
        rooms=cloned_rooms,
        individuals=cloned_individuals,
        static_potentials=cloned_statics,
        dynamic_potential=dynamic_clone,
        absolute_max_speed=config.absolute_max_speed,
    )
    return clone, cell_map, potential_map


class EvacuationRecording:
    """Frozen initial configuration plus actions bucketed by time step."""

    def __init__(self, initial_configuration: InitialConfiguration,
                 actions: Sequence[Sequence[Any]]):
        self.initial_configuration = initial_configuration
        self._actions: Tuple[Tuple[Any, ...], ...] = tuple(tuple(bucket) for bucket in actions)

    @property
    def time_steps(self) -> int:
        return len(self._actions)

    @property
    def action_count(self) -> int:
        return sum(len(bucket) for bucket in self._actions)

    def actions_at(self, time_step: int) -> Tuple[Any, ...]:
        return self._actions[time_step]

    def __iter__(self) -> Iterator[Tuple[int, Any]]:
        for time_step, bucket in enumerate(self._actions):
            for action in bucket:
                yield time_step, action

    def replay(self) -> Iterator[Tuple[int, "EvacuationCellularAutomaton"]]:
        """
        Rebuild the automaton from a fresh clone and apply one bucket per
        iteration. The recording itself is left untouched.
        """
        from .automaton import EvacuationCellularAutomaton

        config, cell_map, _ = clone_configuration(self.initial_configuration)
        automaton = EvacuationCellularAutomaton.from_initial_configuration(config)
        for time_step, bucket in enumerate(self._actions):
            for action in bucket:
                action.adopt(cell_map).execute(automaton)
            yield time_step, automaton


class ActionRecorder:
    """
    Records actions of one automaton. Constructed explicitly and handed to
    the automaton; there is no global instance.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self._actions: List[List[Any]] = [[]]
        self._time_step = 0
        self._cell_map: Dict[Cell, Cell] = {}
        self._potential_map: Dict[Potential, Potential] = {}
        self._initial: Optional[InitialConfiguration] = None
        self._recording = False

    def set_initial_configuration(self, config: InitialConfiguration) -> None:
        self.reset()
        self._initial, self._cell_map, self._potential_map = clone_configuration(config)
        logger.debug("Cloned initial configuration with %d cells", len(self._cell_map))

    @property
    def initial_configuration(self) -> Optional[InitialConfiguration]:
        return self._initial

    @property
    def cell_map(self) -> Dict[Cell, Cell]:
        return dict(self._cell_map)

    @property
    def potential_map(self) -> Dict[Potential, Potential]:
        return dict(self._potential_map)

    def start_recording(self) -> None:
        if self._initial is None:
            raise RuntimeError("The initial configuration has not yet been set. Call "
                               "set_initial_configuration() before starting to record.")
        self._recording = True

    def stop_recording(self) -> None:
        self._recording = False

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def time_step(self) -> int:
        return self._time_step

    def record_action(self, action) -> None:
        if not self._recording:
            return
        self._actions[self._time_step].append(action.adopt(self._cell_map))

    def next_timestep(self) -> None:
        if self._recording:
            self._time_step += 1
            self._actions.append([])

    def get_recording(self) -> EvacuationRecording:
        if self._initial is None:
            raise RuntimeError("Nothing has been recorded.")
        return EvacuationRecording(self._initial, self._actions)
