"""Construction of a ready automaton and its rules from a scenario configuration."""

import logging
from typing import List, Optional, Set, Tuple, TYPE_CHECKING

import numpy as np

from .automaton import EvacuationCellularAutomaton
from .clustering import cluster_exit_cells
from .engine import EvacuationProblem
from .grid import Cell, CellKey, CellKind, Room
from .individual import Individual
from .potential import DynamicPotential, StaticPotential
from .recorder import ActionRecorder
from .rules import RuleSet

if TYPE_CHECKING:
    from ..config import RoomSpec, ScenarioConfig, WallSpec

logger = logging.getLogger(__name__)


def wall_cells(walls: List["WallSpec"], width: int, height: int) -> Set[Tuple[int, int]]:
    """Coordinates covered by wall specs, clamped to the room."""
    blocked = set()
    for wall_spec in walls:
        if wall_spec.wall_type == "rectangle":
            x, y = wall_spec.data['x'], wall_spec.data['y']
            x_end = min(x + wall_spec.data['width'], width)
            y_end = min(y + wall_spec.data['height'], height)
            for wy in range(max(0, y), y_end):
                for wx in range(max(0, x), x_end):
                    blocked.add((wx, wy))
        elif wall_spec.wall_type == "points":
            for wx, wy in wall_spec.data['coords']:
                if 0 <= wx < width and 0 <= wy < height:
                    blocked.add((wx, wy))
    return blocked


def _require_cell(room: Room, x: int, y: int, what: str) -> Cell:
    cell = room.get_cell(x, y)
    if cell is None:
        raise ValueError(f"{what} at ({x}, {y}) of room {room.id} lies inside a wall")
    return cell


def build_room(spec: "RoomSpec") -> Room:
    room = Room.from_walls(spec.room_id, spec.floor, spec.width, spec.height,
                           wall_cells(spec.walls, spec.width, spec.height),
                           x_offset=spec.x_offset, y_offset=spec.y_offset, name=spec.name)
    for zone in spec.slow_zones:
        if not 0.0 <= zone.speed_factor <= 1.0:
            raise ValueError(f"Speed factor must be within [0, 1], got {zone.speed_factor}")
        for y in range(zone.y, min(zone.y + zone.height, room.height)):
            for x in range(zone.x, min(zone.x + zone.width, room.width)):
                cell = room.get_cell(x, y)
                if cell is not None:
                    cell.speed_factor = zone.speed_factor
    for x, y in spec.save_cells:
        _require_cell(room, x, y, "Save cell").kind = CellKind.SAVE
    for index, (x, y) in enumerate(spec.exits):
        cell = _require_cell(room, x, y, "Exit")
        cell.kind = CellKind.EXIT
        cell.exit_name = f"{room.name}-exit-{index}"
    return room


def _link(cell: Cell, target: CellKey) -> None:
    if target not in cell.door_targets:
        cell.door_targets.append(target)


def link_doors(automaton: EvacuationCellularAutomaton, rooms: List["RoomSpec"]) -> None:
    """Connect door cells in both directions."""
    for spec in rooms:
        room = automaton.room(spec.room_id)
        for door in spec.doors:
            cell = _require_cell(room, door.x, door.y, "Door")
            target = _require_cell(automaton.room(door.target_room),
                                   door.target_x, door.target_y, "Door target")
            for linked in (cell, target):
                if linked.kind is CellKind.ROOM:
                    linked.kind = CellKind.DOOR
            _link(cell, target.key)
            _link(target, cell.key)


def build_potentials(automaton: EvacuationCellularAutomaton) -> List[StaticPotential]:
    """One static potential per cluster of adjacent exit cells."""
    rooms = {room.id: room for room in automaton.rooms}
    potentials = []
    for index, cluster in enumerate(cluster_exit_cells(automaton)):
        potential = StaticPotential(index, cluster[0].exit_name or f"exit-{index}")
        potential.compute(rooms, cluster)
        automaton.add_static_potential(potential)
        potentials.append(potential)
        logger.debug("Potential %s covers %d exit cells, max value %.2f",
                     potential.name, len(cluster), potential.max_potential())
    return potentials


def _spawn_individuals(automaton: EvacuationCellularAutomaton, config: "ScenarioConfig",
                       rng: np.random.Generator, next_id: int) -> int:
    for spawn in config.spawn:
        room = automaton.room(spawn.room)
        free = [cell for cell in room.all_cells()
                if cell.occupant is None and cell.kind is CellKind.ROOM and cell.speed_factor > 0]
        if spawn.count > len(free):
            raise ValueError(f"Cannot place {spawn.count} individuals in room {room.id}, "
                             f"only {len(free)} free cells")
        chosen = rng.choice(len(free), size=spawn.count, replace=False)
        for index in chosen:
            individual = Individual(
                next_id,
                relative_speed=float(rng.uniform(*spawn.relative_speed)),
                reaction_time=float(rng.uniform(*spawn.reaction_time)),
                assignment_type=spawn.assignment_type
            )
            automaton.add_individual(free[int(index)], individual)
            next_id += 1
    return next_id


def build_automaton(config: "ScenarioConfig",
                    recorder: Optional[ActionRecorder] = None) -> EvacuationCellularAutomaton:
    """
    Build a ready automaton: floors, rooms, doors, static potentials from
    exit clusters, dynamic potential and individuals.
    """
    automaton = EvacuationCellularAutomaton(recorder)
    automaton.absolute_max_speed = config.absolute_max_speed
    for name in config.floors:
        automaton.add_floor(name)
    for spec in config.rooms:
        automaton.add_room(build_room(spec))
    link_doors(automaton, config.rooms)

    build_potentials(automaton)
    automaton.dynamic_potential = DynamicPotential(config.parameters.dynamic_potential_max)

    next_id = 1
    for spec in config.individuals:
        individual = Individual(next_id, spec.relative_speed, spec.reaction_time,
                                spec.assignment_type)
        automaton.add_individual(automaton.get_cell(spec.room, spec.x, spec.y), individual)
        next_id += 1
    _spawn_individuals(automaton, config, np.random.default_rng(config.seed), next_id)

    logger.info("Built automaton: %d rooms, %d cells, %d exits, %d individuals",
                len(automaton.rooms), automaton.cell_count(), len(automaton.exits),
                automaton.individual_count)
    return automaton


def build_problem(config: "ScenarioConfig",
                  recorder: Optional[ActionRecorder] = None) -> EvacuationProblem:
    return EvacuationProblem(
        automaton=build_automaton(config, recorder),
        rule_set=RuleSet.from_names(config.rules.primary, config.rules.loop),
        parameters=config.parameters,
        step_limit=config.max_steps
    )
