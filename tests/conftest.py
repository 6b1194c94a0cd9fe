from typing import Iterable, Optional, Sequence, Tuple

import pytest

from evac_ca.config import ParameterSet
from evac_ca.model.automaton import EvacuationCellularAutomaton
from evac_ca.model.building import build_potentials
from evac_ca.model.engine import EvacuationProblem
from evac_ca.model.grid import CellKind, Room
from evac_ca.model.individual import Individual
from evac_ca.model.recorder import ActionRecorder
from evac_ca.model.rules import RuleSet, create_rule


def make_room(room_id: int, width: int, height: int,
              exits: Iterable[Tuple[int, int]] = (),
              walls: Iterable[Tuple[int, int]] = (),
              floor_id: int = 0) -> Room:
    room = Room.from_walls(room_id, floor_id, width, height, set(walls))
    for x, y in exits:
        room.get_cell(x, y).kind = CellKind.EXIT
    return room


def make_automaton(rooms: Sequence[Room],
                   individuals: Iterable[Tuple[int, int, int]] = (),
                   recorder: Optional[ActionRecorder] = None,
                   **individual_kwargs) -> EvacuationCellularAutomaton:
    """Automaton on one floor with potentials; individuals given as (room, x, y)."""
    automaton = EvacuationCellularAutomaton(recorder)
    automaton.add_floor("ground")
    for room in rooms:
        automaton.add_room(room)
    build_potentials(automaton)
    for index, (room_id, x, y) in enumerate(individuals, start=1):
        automaton.add_individual(automaton.get_cell(room_id, x, y),
                                 Individual(index, **individual_kwargs))
    return automaton


def make_problem(automaton: EvacuationCellularAutomaton,
                 loop: Sequence[str] = ("reaction_room", "movement", "save", "evacuate"),
                 step_limit: int = 100,
                 **parameters) -> EvacuationProblem:
    rule_set = RuleSet()
    rule_set.add(create_rule("initial_potential"), primary=True, loop=False)
    for name in loop:
        rule_set.add(create_rule(name))
    return EvacuationProblem(automaton, rule_set, ParameterSet(**parameters), step_limit)


@pytest.fixture
def corridor() -> EvacuationCellularAutomaton:
    """1x5 room with the exit at x=4 and one individual at x=0."""
    return make_automaton([make_room(0, 5, 1, exits=[(4, 0)])], individuals=[(0, 0, 0)])


@pytest.fixture
def two_rooms() -> EvacuationCellularAutomaton:
    """Room 0 (3x1) with a door at x=2 leading to room 1 (3x1) with the exit at x=2."""
    first = make_room(0, 3, 1)
    second = make_room(1, 3, 1, exits=[(2, 0)])
    door = first.get_cell(2, 0)
    door.kind = CellKind.DOOR
    door.door_targets.append(second.get_cell(0, 0).key)
    return make_automaton([first, second])
