import math

import numpy as np
import pytest

from evac_ca.model.grid import Direction8
from evac_ca.model.potential import UNKNOWN, DynamicPotential, StaticPotential

from conftest import make_room


def _compute(*rooms, exits):
    potential = StaticPotential(0)
    potential.compute({room.id: room for room in rooms}, exits)
    return potential


def test_corridor_potential_counts_steps_to_exit() -> None:
    room = make_room(0, 5, 1, exits=[(4, 0)])
    potential = _compute(room, exits=[room.get_cell(4, 0)])

    assert [potential.potential(room.get_cell(x, 0)) for x in range(5)] == [4, 3, 2, 1, 0]
    assert potential.max_potential() == 4
    assert potential.exit_cells == [room.get_cell(4, 0).key]


def test_diagonal_steps_cost_square_root_of_two() -> None:
    room = make_room(0, 3, 3, exits=[(2, 2)])
    potential = _compute(room, exits=[room.get_cell(2, 2)])

    assert potential.potential(room.get_cell(0, 0)) == pytest.approx(2 * math.sqrt(2))
    assert potential.potential(room.get_cell(0, 2)) == pytest.approx(2.0)


def test_potential_decreases_along_some_neighbor() -> None:
    room = make_room(0, 6, 4, exits=[(5, 0)], walls=[(2, 0), (2, 1), (2, 2)])
    potential = _compute(room, exits=[room.get_cell(5, 0)])

    for cell in room.all_cells():
        if cell.is_exit:
            continue
        here = potential.potential(cell)
        neighbors = [room.neighbor(cell, d) for d in Direction8]
        assert any(n is not None and potential.potential(n) < here for n in neighbors)


def test_unreachable_cells_stay_unknown() -> None:
    room = make_room(0, 5, 1, exits=[(4, 0)], walls=[(2, 0)])
    potential = _compute(room, exits=[room.get_cell(4, 0)])

    assert potential.potential(room.get_cell(0, 0)) == UNKNOWN
    assert not potential.has_valid_potential(room.get_cell(1, 0))
    assert potential.has_valid_potential(room.get_cell(3, 0))


def test_impassable_border_blocks_relaxation() -> None:
    room = make_room(0, 3, 1, exits=[(2, 0)])
    room.set_passable(1, 0, Direction8.RIGHT, False)
    potential = _compute(room, exits=[room.get_cell(2, 0)])

    assert not potential.has_valid_potential(room.get_cell(0, 0))


def test_slow_cells_cost_more() -> None:
    room = make_room(0, 3, 1, exits=[(2, 0)])
    room.get_cell(1, 0).speed_factor = 0.5
    potential = _compute(room, exits=[room.get_cell(2, 0)])

    assert potential.potential(room.get_cell(1, 0)) == pytest.approx(1.0)
    assert potential.potential(room.get_cell(0, 0)) == pytest.approx(3.0)


def test_potential_crosses_doors(two_rooms) -> None:
    potential = two_rooms.static_potentials[0]
    first, second = two_rooms.room(0), two_rooms.room(1)

    assert [potential.potential(second.get_cell(x, 0)) for x in range(3)] == [2, 1, 0]
    assert [potential.potential(first.get_cell(x, 0)) for x in range(3)] == [5, 4, 3]


def test_static_potential_rejects_negative_values() -> None:
    room = make_room(0, 1, 1)
    with pytest.raises(ValueError):
        StaticPotential(0).set_potential(room.get_cell(0, 0), -2)


def test_static_clone_is_independent() -> None:
    room = make_room(0, 2, 1, exits=[(1, 0)])
    potential = _compute(room, exits=[room.get_cell(1, 0)])
    clone = potential.clone()
    clone.set_potential(room.get_cell(0, 0), 9)

    assert potential.potential(room.get_cell(0, 0)) == 1
    assert clone.potential(room.get_cell(0, 0)) == 9


def test_dynamic_potential_is_bounded() -> None:
    room = make_room(0, 2, 1)
    cell = room.get_cell(0, 0)
    dynamic = DynamicPotential(max_value=2)

    for _ in range(5):
        dynamic.increase(cell)
    assert dynamic.potential(cell) == 2
    for _ in range(5):
        dynamic.decrease(cell)
    assert dynamic.potential(cell) == 0
    assert not dynamic.has_valid_potential(cell)
    with pytest.raises(ValueError):
        dynamic.set_potential(cell, 3)


def test_dynamic_spreads_to_existing_neighbors_only() -> None:
    room = make_room(0, 3, 3, walls=[(0, 0)])
    dynamic = DynamicPotential(max_value=5)
    dynamic.set_potential(room.get_cell(1, 1), 3)

    dynamic.update([room], 1.0, 0.0, np.random.default_rng(0))
    values = dynamic.room_values(0)

    assert values[1, 1] == 3
    assert values[0, 0] == 0
    assert values[0, 1] == 1 and values[2, 2] == 1


def test_dynamic_decay() -> None:
    room = make_room(0, 2, 1)
    dynamic = DynamicPotential(max_value=5)
    dynamic.set_potential(room.get_cell(0, 0), 2)

    dynamic.update([room], 0.0, 1.0, np.random.default_rng(0))

    assert dynamic.potential(room.get_cell(0, 0)) == 1
    assert dynamic.potential(room.get_cell(1, 0)) == 0


def test_dynamic_update_clips_at_maximum() -> None:
    room = make_room(0, 3, 1)
    dynamic = DynamicPotential(max_value=2)
    for x in range(3):
        dynamic.set_potential(room.get_cell(x, 0), 2)

    dynamic.update([room], 1.0, 0.0, np.random.default_rng(0))

    assert dynamic.max_potential() == 2
