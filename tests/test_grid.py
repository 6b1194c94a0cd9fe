import pytest

from evac_ca.model.grid import Cell, CellKind, Direction8, Level, Room


def test_direction_offsets_and_inverse() -> None:
    assert Direction8.TOP.y_offset == -1
    assert Direction8.DOWN_RIGHT.invert() is Direction8.TOP_LEFT
    assert Direction8.from_offset(1, 0) is Direction8.RIGHT
    assert Direction8.TOP_LEFT.is_diagonal
    assert not Direction8.LEFT.is_diagonal


def test_direction_from_invalid_offset() -> None:
    with pytest.raises(ValueError):
        Direction8.from_offset(2, 0)
    with pytest.raises(ValueError):
        Direction8.from_offset(0, 0)


def test_speed_factor_is_validated() -> None:
    with pytest.raises(ValueError):
        Cell(0, 0, speed_factor=1.5)
    with pytest.raises(ValueError):
        Cell(0, 0, speed_factor=-0.1)


def test_cell_hash_is_fixed_by_room_and_equality_is_identity() -> None:
    room = Room(3, 0, 2, 2)
    cell = Cell(1, 0)
    room.set_cell(cell)
    clone = cell.copy()
    Room(3, 0, 2, 2).set_cell(clone)

    assert hash(cell) == hash(clone)
    assert cell != clone
    assert len({cell, clone}) == 2
    assert cell.key == (3, 1, 0)


def test_cell_cannot_move_to_another_room() -> None:
    cell = Cell(0, 0)
    Room(1, 0, 1, 1).set_cell(cell)
    with pytest.raises(RuntimeError):
        Room(2, 0, 1, 1).set_cell(cell)


def test_room_out_of_range_access() -> None:
    room = Room.from_walls(0, 0, 3, 2)
    with pytest.raises(ValueError):
        room.get_cell(3, 0)
    with pytest.raises(ValueError):
        room.get_cell(0, -1)
    assert not room.exists_cell_at(5, 5)


def test_walls_are_holes() -> None:
    room = Room.from_walls(0, 0, 3, 3, walls={(1, 1)})
    assert room.get_cell(1, 1) is None
    assert room.cell_count() == 8
    assert room.cell_count(all_cells=True) == 9
    assert room.neighbor(room.get_cell(0, 1), Direction8.RIGHT) is None


def test_passability_is_symmetric() -> None:
    room = Room.from_walls(0, 0, 2, 1)
    room.set_passable(0, 0, Direction8.RIGHT, False)
    assert not room.get_cell(0, 0).is_passable(Direction8.RIGHT)
    assert not room.get_cell(1, 0).is_passable(Direction8.LEFT)

    room.set_passable(1, 0, Direction8.LEFT, True)
    assert room.get_cell(0, 0).is_passable(Direction8.RIGHT)


def test_levels_are_symmetric() -> None:
    room = Room.from_walls(0, 0, 1, 2)
    room.set_level(0, 0, Direction8.DOWN, Level.HIGHER)
    assert room.get_cell(0, 0).get_level(Direction8.DOWN) is Level.HIGHER
    assert room.get_cell(0, 1).get_level(Direction8.TOP) is Level.LOWER
    assert room.get_cell(0, 1).get_level(Direction8.LEFT) is Level.EQUAL


def test_occupancy_lock() -> None:
    cell = Cell(0, 0)
    cell.occupied_until = 2.5
    assert not cell.is_occupied()
    assert cell.is_occupied(time=2)
    assert not cell.is_occupied(time=3)
    cell.occupant = 7
    assert cell.is_occupied(time=10)


def test_kind_predicates_and_rendering() -> None:
    room = Room.from_walls(0, 0, 3, 1, walls={(1, 0)})
    room.get_cell(0, 0).kind = CellKind.SAVE
    room.get_cell(2, 0).kind = CellKind.EXIT

    assert room.get_cell(0, 0).is_safe and not room.get_cell(0, 0).is_exit
    assert room.exits() == [room.get_cell(2, 0)]
    assert room.graphical_to_string() == "S#E"
    assert room.absolute(room.get_cell(2, 0)) == (2, 0)
