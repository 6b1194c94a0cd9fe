"""The evacuation cellular automaton: rooms, individuals, potentials and occupancy."""

import logging
from enum import Enum
from typing import Dict, List, Optional, TYPE_CHECKING

import numpy as np

from .grid import Cell, CellKey, Direction8, Room
from .individual import DeathCause, Individual
from .potential import DynamicPotential, StaticPotential
from .recorder import (ActionRecorder, DieAction, ExitAction, InitialConfiguration,
                       MoveAction, StateChangedAction, SwapAction)

if TYPE_CHECKING:
    from .recorder import EvacuationRecording

logger = logging.getLogger(__name__)

# Edge length of a cell in meters.
CELL_SIZE = 0.4


class AutomatonState(Enum):
    READY = "ready"
    RUNNING = "running"
    FINISHED = "finished"


class EvacuationCellularAutomaton:
    """
    Holds the building (floors, rooms, cells), the individuals and the
    potentials, and is the only place where occupancy changes.

    Occupancy changes go through move_individual and swap_individuals while
    running; both report to the recorder before touching the grid.
    """

    def __init__(self, recorder: Optional[ActionRecorder] = None):
        self.recorder = recorder if recorder is not None else ActionRecorder()
        self.state = AutomatonState.READY

        self._floors: List[str] = []
        self._rooms_by_floor: List[List[Room]] = []
        self._rooms: Dict[int, Room] = {}
        self._exits: List[Cell] = []

        self._individuals: List[Individual] = []
        self._by_id: Dict[int, Individual] = {}
        self._by_type: Dict[str, List[Individual]] = {}
        self._evacuated: List[Individual] = []
        self._dead: List[Individual] = []
        self._marked: List[Individual] = []
        self._initial_count = 0

        self._static_potentials: Dict[int, StaticPotential] = {}
        self.dynamic_potential = DynamicPotential()

        self._absolute_max_speed = 1.0

    @classmethod
    def from_initial_configuration(cls, config: InitialConfiguration,
                                   recorder: Optional[ActionRecorder] = None
                                   ) -> "EvacuationCellularAutomaton":
        """Rebuild a ready automaton; used to replay recordings."""
        automaton = cls(recorder)
        for name in config.floors:
            automaton.add_floor(name)
        for room in config.rooms:
            automaton.add_room(room)
        for potential in config.static_potentials:
            automaton.add_static_potential(potential)
        automaton.dynamic_potential = config.dynamic_potential
        automaton.absolute_max_speed = config.absolute_max_speed
        for individual in config.individuals:
            automaton.add_individual(automaton.cell_for(individual.cell), individual,
                                     assign_potential=False)
        return automaton

    # ------------------------------------------------------------------
    # Speed

    @property
    def absolute_max_speed(self) -> float:
        return self._absolute_max_speed

    @absolute_max_speed.setter
    def absolute_max_speed(self, value: float) -> None:
        if value <= 0:
            raise ValueError("Maximal speed must be greater than zero!")
        self._absolute_max_speed = value

    @property
    def steps_per_second(self) -> float:
        return self._absolute_max_speed / CELL_SIZE

    @property
    def seconds_per_step(self) -> float:
        return CELL_SIZE / self._absolute_max_speed

    def absolute_speed(self, relative_speed: float) -> float:
        return self._absolute_max_speed * relative_speed

    # ------------------------------------------------------------------
    # Floors, rooms, cells

    def add_floor(self, name: str) -> int:
        self._floors.append(name)
        self._rooms_by_floor.append([])
        return len(self._floors) - 1

    @property
    def floors(self) -> List[str]:
        return list(self._floors)

    def add_room(self, room: Room) -> None:
        if room.id in self._rooms:
            raise ValueError(f"Room {room.id} exists already.")
        if not 0 <= room.floor_id < len(self._floors):
            raise RuntimeError(f"No floor with id {room.floor_id} has been added before.")
        new_exits = room.exits()
        for cell in new_exits:
            if cell in self._exits:
                raise ValueError(f"Exit {cell.key} exists already.")
        self._rooms[room.id] = room
        self._rooms_by_floor[room.floor_id].append(room)
        self._exits.extend(new_exits)

    def remove_room(self, room: Room) -> None:
        if self._rooms.get(room.id) is not room:
            raise ValueError(f"Room {room.id} is not part of the automaton.")
        if room.occupants:
            raise ValueError(f"Room {room.id} still contains individuals.")
        del self._rooms[room.id]
        self._rooms_by_floor[room.floor_id].remove(room)
        self._exits = [cell for cell in self._exits if cell.room_id != room.id]

    @property
    def rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def room(self, room_id: int) -> Room:
        try:
            return self._rooms[room_id]
        except KeyError:
            raise ValueError(f"Unknown room {room_id}") from None

    def rooms_on_floor(self, floor_id: int) -> List[Room]:
        if not 0 <= floor_id < len(self._rooms_by_floor):
            raise RuntimeError(f"No floor with id {floor_id} has been added.")
        return list(self._rooms_by_floor[floor_id])

    @property
    def exits(self) -> List[Cell]:
        return list(self._exits)

    def exists_at(self, room_id: int, x: int, y: int) -> bool:
        room = self._rooms.get(room_id)
        return room is not None and room.exists_cell_at(x, y)

    def get_cell(self, room_id: int, x: int, y: int) -> Cell:
        cell = self.room(room_id).get_cell(x, y)
        if cell is None:
            raise ValueError(f"No cell at ({x}, {y}) in room {room_id}")
        return cell

    def cell_for(self, key: CellKey) -> Cell:
        return self.get_cell(key.room_id, key.x, key.y)

    def cell_count(self) -> int:
        return sum(room.cell_count() for room in self._rooms.values())

    def neighbors(self, cell: Cell, passable_only: bool = True,
                  free_only: bool = False, time: Optional[float] = None) -> List[Cell]:
        """
        Cells reachable in one step: the 8-neighborhood inside the room and
        linked doors of other rooms.

        Free-only queries also drop diagonal steps squeezing between two
        occupied orthogonal cells.
        """
        room = self._rooms[cell.room_id]
        result = []
        for direction in Direction8:
            if passable_only and not cell.is_passable(direction):
                continue
            other = room.neighbor(cell, direction)
            if other is None:
                continue
            if free_only:
                if other.is_occupied(time):
                    continue
                if direction.is_diagonal and self._cuts_corner(room, cell, direction):
                    continue
            result.append(other)
        for key in cell.door_targets:
            if not self.exists_at(key.room_id, key.x, key.y):
                continue
            other = self.cell_for(key)
            if free_only and other.is_occupied(time):
                continue
            result.append(other)
        return result

    def cuts_corner(self, cell: Cell, other: Cell) -> bool:
        """True for a diagonal step within a room between two occupied orthogonal cells."""
        if cell.room_id != other.room_id:
            return False
        dx, dy = other.x - cell.x, other.y - cell.y
        if dx == 0 or dy == 0:
            return False
        return self._cuts_corner(self._rooms[cell.room_id], cell, Direction8.from_offset(dx, dy))

    @staticmethod
    def _cuts_corner(room: Room, cell: Cell, direction: Direction8) -> bool:
        horizontal = room.neighbor(cell, Direction8.from_offset(direction.x_offset, 0))
        vertical = room.neighbor(cell, Direction8.from_offset(0, direction.y_offset))
        return (horizontal is not None and horizontal.occupant is not None
                and vertical is not None and vertical.occupant is not None)

    # ------------------------------------------------------------------
    # Potentials

    def add_static_potential(self, potential: StaticPotential) -> None:
        if potential.id in self._static_potentials:
            raise ValueError(f"Static potential {potential.id} exists already.")
        self._static_potentials[potential.id] = potential

    def static_potential(self, potential_id: int) -> StaticPotential:
        try:
            return self._static_potentials[potential_id]
        except KeyError:
            raise ValueError(f"No static potential with id {potential_id}") from None

    @property
    def static_potentials(self) -> List[StaticPotential]:
        return list(self._static_potentials.values())

    def min_potential_for(self, cell: Cell) -> Optional[StaticPotential]:
        """Reachable static potential with the smallest value; ties by registration order."""
        best = None
        best_value = None
        for potential in self._static_potentials.values():
            if not potential.has_valid_potential(cell):
                continue
            value = potential.potential(cell)
            if best_value is None or value < best_value:
                best, best_value = potential, value
        return best

    def update_dynamic_potential(self, probability_increase: float,
                                 probability_decrease: float,
                                 rng: np.random.Generator) -> None:
        self.dynamic_potential.update(self._rooms.values(), probability_increase,
                                      probability_decrease, rng)

    # ------------------------------------------------------------------
    # Individuals

    def add_individual(self, cell: Cell, individual: Individual,
                       assign_potential: bool = True) -> Optional[StaticPotential]:
        """
        Place an individual. Returns its static potential, or None if no
        exit is reachable from the cell.
        """
        if self.state is not AutomatonState.READY:
            raise RuntimeError("Individual added after simulation has started.")
        if individual.id in self._by_id:
            raise ValueError(f"Individual with id {individual.id} exists already.")
        if cell.occupant is not None and cell.occupant != individual.id:
            raise ValueError(f"Cell {cell.key} is already occupied by {cell.occupant}.")
        room = self.room(cell.room_id)

        self._individuals.append(individual)
        self._by_id[individual.id] = individual
        self._by_type.setdefault(individual.assignment_type, []).append(individual)
        cell.occupant = individual.id
        room.occupants.add(individual.id)
        individual.cell = cell.key

        if assign_potential:
            individual.static_potential = self.min_potential_for(cell)
            if individual.static_potential is None:
                logger.debug("No exit reachable for individual %d at %s", individual.id, cell.key)
        return individual.static_potential

    @property
    def individuals(self) -> List[Individual]:
        """Individuals still inside the simulation."""
        return list(self._individuals)

    @property
    def evacuated_individuals(self) -> List[Individual]:
        return list(self._evacuated)

    @property
    def dead_individuals(self) -> List[Individual]:
        return list(self._dead)

    def individual(self, individual_id: int) -> Individual:
        return self._by_id[individual_id]

    def individual_at(self, cell: Cell) -> Optional[Individual]:
        if cell.occupant is None:
            return None
        return self._by_id[cell.occupant]

    def cell_of(self, individual: Individual) -> Cell:
        return self.cell_for(individual.cell)

    def individuals_of_type(self, assignment_type: str) -> List[Individual]:
        return list(self._by_type.get(assignment_type, []))

    @property
    def individual_count(self) -> int:
        return len(self._individuals)

    @property
    def initial_individual_count(self) -> int:
        return self._initial_count

    @property
    def not_safe_count(self) -> int:
        return sum(1 for individual in self._individuals if not individual.is_safe)

    def dead_count(self, cause: Optional[DeathCause] = None) -> int:
        if cause is None:
            return len(self._dead)
        return sum(1 for individual in self._dead if individual.death_cause is cause)

    def _require_running(self, operation: str) -> None:
        if self.state is not AutomatonState.RUNNING:
            raise RuntimeError(f"Cannot {operation} while the automaton is {self.state.value}.")

    def _require_active(self, individual: Individual) -> None:
        if self._by_id.get(individual.id) is not individual or individual not in self._individuals:
            raise ValueError(f"Individual {individual.id} is not in the simulation.")

    def move_individual(self, from_cell: Cell, to_cell: Cell) -> None:
        """Relocate the occupant of from_cell to the free to_cell."""
        self._require_running("move individuals")
        if from_cell.occupant is None:
            raise ValueError(f"No individual standing on the from-cell {from_cell.key}!")
        individual = self._by_id[from_cell.occupant]
        if from_cell is to_cell:
            self.recorder.record_action(MoveAction(from_cell, from_cell, individual.id))
            return
        if to_cell.occupant is not None:
            raise ValueError(f"Individual {to_cell.occupant} already standing on the "
                             f"to-cell {to_cell.key}!")
        source = self.room(from_cell.room_id)
        target = self.room(to_cell.room_id)

        self.recorder.record_action(MoveAction(from_cell, to_cell, individual.id))
        if source is not target:
            source.occupants.discard(individual.id)
            target.occupants.add(individual.id)
        from_cell.occupant = None
        to_cell.occupant = individual.id
        individual.cell = to_cell.key

    def swap_individuals(self, cell1: Cell, cell2: Cell) -> None:
        """Exchange the occupants of two occupied cells."""
        self._require_running("swap individuals")
        if cell1.occupant is None:
            raise ValueError("No individual standing on cell #1!")
        if cell2.occupant is None:
            raise ValueError("No individual standing on cell #2!")
        if cell1 is cell2:
            raise ValueError("The cells are equal. Can't swap on equal cells.")
        room1 = self.room(cell1.room_id)
        room2 = self.room(cell2.room_id)
        first = self._by_id[cell1.occupant]
        second = self._by_id[cell2.occupant]

        self.recorder.record_action(SwapAction(cell1, cell2))
        if room1 is not room2:
            room1.occupants.discard(first.id)
            room2.occupants.discard(second.id)
            room1.occupants.add(second.id)
            room2.occupants.add(first.id)
        cell1.occupant, cell2.occupant = second.id, first.id
        first.cell, second.cell = cell2.key, cell1.key

    def _take_off_grid(self, individual: Individual) -> Cell:
        cell = self.cell_of(individual)
        cell.occupant = None
        self.room(cell.room_id).occupants.discard(individual.id)
        self._individuals.remove(individual)
        if individual in self._marked:
            self._marked.remove(individual)
        return cell

    def set_individual_dead(self, individual: Individual, cause: DeathCause) -> None:
        self._require_active(individual)
        cell = self.cell_of(individual)
        individual.die(cause)
        self.recorder.record_action(DieAction(cell, cause, individual.id))
        self._take_off_grid(individual)
        self._dead.append(individual)
        logger.debug("Individual %d died (%s)", individual.id, cause.value)

    def set_individual_safe(self, individual: Individual) -> None:
        self._require_active(individual)
        individual.set_safe(individual.step_end_time)

    def set_individual_evacuated(self, individual: Individual) -> None:
        self._require_active(individual)
        cell = self.cell_of(individual)
        individual.set_evacuated()
        self.recorder.record_action(ExitAction(cell, individual.id))
        self._take_off_grid(individual)
        self._evacuated.append(individual)

    def mark_for_removal(self, individual: Individual) -> None:
        self._require_active(individual)
        if individual not in self._marked:
            self._marked.append(individual)

    def is_marked(self, individual: Individual) -> bool:
        return individual in self._marked

    def remove_marked_individuals(self) -> None:
        for individual in list(self._marked):
            self.set_individual_evacuated(individual)
        self._marked.clear()

    # ------------------------------------------------------------------
    # Lifecycle and recording

    def _set_state(self, state: AutomatonState) -> None:
        self.state = state
        self.recorder.record_action(StateChangedAction(state))

    def start(self) -> None:
        if self.state is not AutomatonState.READY:
            raise RuntimeError(f"Cannot start an automaton that is {self.state.value}.")
        self._initial_count = len(self._individuals)
        self._set_state(AutomatonState.RUNNING)

    def stop(self) -> None:
        self._require_running("stop")
        self._set_state(AutomatonState.FINISHED)

    def reset(self) -> None:
        """Remove all individuals and return to READY. Recording stops."""
        self.recorder.stop_recording()
        self.recorder.reset()
        for individual in list(self._individuals):
            self._take_off_grid(individual)
        self._individuals.clear()
        self._by_id.clear()
        self._by_type.clear()
        self._evacuated.clear()
        self._dead.clear()
        self._marked.clear()
        self.dynamic_potential.reset()
        self._initial_count = 0
        for room in self._rooms.values():
            room.alarmed = False
            for cell in room.all_cells():
                cell.occupied_until = 0.0
        self.state = AutomatonState.READY

    def initial_configuration(self) -> InitialConfiguration:
        return InitialConfiguration(
            floors=list(self._floors),
            rooms=list(self._rooms.values()),
            individuals=list(self._individuals),
            static_potentials=self.static_potentials,
            dynamic_potential=self.dynamic_potential,
            absolute_max_speed=self._absolute_max_speed,
        )

    def start_recording(self) -> None:
        """Clone the current configuration and record from here on. Only while READY."""
        if self.state is not AutomatonState.READY:
            raise RuntimeError(f"Cannot start recording while the automaton is {self.state.value}.")
        self.recorder.set_initial_configuration(self.initial_configuration())
        self.recorder.start_recording()

    def stop_recording(self) -> None:
        self.recorder.stop_recording()

    def get_recording(self) -> "EvacuationRecording":
        return self.recorder.get_recording()

    # ------------------------------------------------------------------

    def graphical_to_string(self) -> str:
        parts = []
        for room in self._rooms.values():
            parts.append(f"{room.name} (floor {room.floor_id}):\n{room.graphical_to_string()}")
        return "\n\n".join(parts)
