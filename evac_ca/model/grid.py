"""Cells and rooms for the evacuation cellular automaton."""

from enum import Enum
from typing import Dict, Iterator, List, NamedTuple, Optional, Set, Tuple


class Direction8(Enum):
    """
    The eight neighbor directions of a square cell.

    Coordinate convention: x grows to the right, y grows downward.
    """
    TOP_LEFT = (-1, -1)
    TOP = (0, -1)
    TOP_RIGHT = (1, -1)
    LEFT = (-1, 0)
    RIGHT = (1, 0)
    DOWN_LEFT = (-1, 1)
    DOWN = (0, 1)
    DOWN_RIGHT = (1, 1)

    @property
    def x_offset(self) -> int:
        return self.value[0]

    @property
    def y_offset(self) -> int:
        return self.value[1]

    @property
    def is_diagonal(self) -> bool:
        return self.x_offset != 0 and self.y_offset != 0

    def invert(self) -> "Direction8":
        return Direction8((-self.x_offset, -self.y_offset))

    @classmethod
    def from_offset(cls, dx: int, dy: int) -> "Direction8":
        try:
            return cls((dx, dy))
        except ValueError:
            raise ValueError(f"({dx}, {dy}) is not a neighbor offset") from None


class Level(Enum):
    """Relative elevation of a neighbor."""
    LOWER = -1
    EQUAL = 0
    HIGHER = 1

    def inverse(self) -> "Level":
        return Level(-self.value)


class CellKind(Enum):
    ROOM = "room"
    EXIT = "exit"
    DOOR = "door"
    SAVE = "save"


class CellKey(NamedTuple):
    """Stable address of a cell inside the building."""
    room_id: int
    x: int
    y: int


class Cell:
    """
    A single square of a room.

    The hash is fixed when the cell is attached to a room and is built from
    (room_id, y, x) only. Equality is identity, so a cell and its clone are
    always distinct dictionary keys.
    """

    def __init__(self, x: int, y: int, speed_factor: float = 1.0,
                 kind: CellKind = CellKind.ROOM):
        if not 0.0 <= speed_factor <= 1.0:
            raise ValueError(f"Speed factor must be within [0, 1], got {speed_factor}")
        self.x = x
        self.y = y
        self.speed_factor = speed_factor
        self.kind = kind
        self.room_id: Optional[int] = None
        self.occupant: Optional[int] = None
        self.occupied_until = 0.0
        self.door_targets: List[CellKey] = []
        self.exit_name: Optional[str] = None
        self._bounds: Set[Direction8] = set()
        self._levels: Dict[Direction8, Level] = {}
        self._hash = hash((None, y, x))

    def attach(self, room_id: int) -> None:
        if self.room_id is not None and self.room_id != room_id:
            raise RuntimeError(f"Cell {self.x, self.y} already belongs to room {self.room_id}")
        self.room_id = room_id
        self._hash = hash((room_id, self.y, self.x))

    @property
    def key(self) -> CellKey:
        return CellKey(self.room_id, self.x, self.y)

    def __hash__(self) -> int:
        return self._hash

    def __repr__(self) -> str:
        return (f"Cell(room={self.room_id}, x={self.x}, y={self.y}, "
                f"kind={self.kind.value}, occupant={self.occupant})")

    @property
    def is_exit(self) -> bool:
        return self.kind is CellKind.EXIT

    @property
    def is_safe(self) -> bool:
        return self.kind in (CellKind.EXIT, CellKind.SAVE)

    @property
    def is_door(self) -> bool:
        return self.kind is CellKind.DOOR

    def is_occupied(self, time: Optional[float] = None) -> bool:
        """Occupied by an individual, or still locked by one that just left."""
        if self.occupant is not None:
            return True
        return time is not None and time < self.occupied_until

    def is_passable(self, direction: Direction8) -> bool:
        return direction not in self._bounds

    def get_level(self, direction: Direction8) -> Level:
        return self._levels.get(direction, Level.EQUAL)

    # Only Room writes these, so both sides of a border stay consistent.
    def _set_bound(self, direction: Direction8, passable: bool) -> None:
        if passable:
            self._bounds.discard(direction)
        else:
            self._bounds.add(direction)

    def _set_level(self, direction: Direction8, level: Level) -> None:
        self._levels[direction] = level

    def copy(self) -> "Cell":
        """Structural copy without occupant and without room attachment."""
        clone = Cell(self.x, self.y, self.speed_factor, self.kind)
        clone.occupied_until = self.occupied_until
        clone.exit_name = self.exit_name
        clone._bounds = set(self._bounds)
        clone._levels = dict(self._levels)
        return clone


class Room:
    """
    Finite matrix of cells. Missing entries are holes (walls, outside).

    Coordinate convention: (x, y) for the API, [y][x] for storage.
    """

    def __init__(self, room_id: int, floor_id: int, width: int, height: int,
                 x_offset: int = 0, y_offset: int = 0, name: str = ""):
        if width <= 0 or height <= 0:
            raise ValueError(f"Room dimensions must be positive, got {width}x{height}")
        self.id = room_id
        self.floor_id = floor_id
        self.width = width
        self.height = height
        self.x_offset = x_offset
        self.y_offset = y_offset
        self.name = name or f"room-{room_id}"
        self.alarmed = False
        self._cells: List[List[Optional[Cell]]] = [[None] * width for _ in range(height)]
        # Ids of individuals standing in this room.
        self.occupants: Set[int] = set()

    @classmethod
    def from_walls(cls, room_id: int, floor_id: int, width: int, height: int,
                   walls: Optional[Set[Tuple[int, int]]] = None, **kwargs) -> "Room":
        """Build a rectangular room whose wall coordinates are holes."""
        room = cls(room_id, floor_id, width, height, **kwargs)
        walls = walls or set()
        for y in range(height):
            for x in range(width):
                if (x, y) not in walls:
                    room.set_cell(Cell(x, y))
        return room

    def __repr__(self) -> str:
        return f"Room(id={self.id}, floor={self.floor_id}, {self.width}x{self.height})"

    def _check_coordinates(self, x: int, y: int) -> None:
        if not 0 <= x < self.width:
            raise ValueError(f"Invalid x-value: {x}")
        if not 0 <= y < self.height:
            raise ValueError(f"Invalid y-value: {y}")

    def set_cell(self, cell: Cell) -> None:
        self._check_coordinates(cell.x, cell.y)
        cell.attach(self.id)
        self._cells[cell.y][cell.x] = cell

    def get_cell(self, x: int, y: int) -> Optional[Cell]:
        self._check_coordinates(x, y)
        return self._cells[y][x]

    def exists_cell_at(self, x: int, y: int) -> bool:
        if not (0 <= x < self.width and 0 <= y < self.height):
            return False
        return self._cells[y][x] is not None

    def neighbor(self, cell: Cell, direction: Direction8) -> Optional[Cell]:
        nx, ny = cell.x + direction.x_offset, cell.y + direction.y_offset
        if self.exists_cell_at(nx, ny):
            return self._cells[ny][nx]
        return None

    def all_cells(self) -> List[Cell]:
        return [c for row in self._cells for c in row if c is not None]

    def __iter__(self) -> Iterator[Cell]:
        return iter(self.all_cells())

    def cell_count(self, all_cells: bool = False) -> int:
        if all_cells:
            return self.width * self.height
        return len(self.all_cells())

    def doors(self) -> List[Cell]:
        return [c for c in self.all_cells() if c.is_door]

    def exits(self) -> List[Cell]:
        return [c for c in self.all_cells() if c.is_exit]

    def absolute(self, cell: Cell) -> Tuple[int, int]:
        return cell.x + self.x_offset, cell.y + self.y_offset

    def set_passable(self, x: int, y: int, direction: Direction8,
                     passable: bool) -> None:
        """Set passability towards a direction; the neighbor gets the inverse."""
        cell = self.get_cell(x, y)
        if cell is None:
            raise ValueError(f"No cell at ({x}, {y}) in {self!r}")
        other = self.neighbor(cell, direction)
        if other is not None:
            other._set_bound(direction.invert(), passable)
        cell._set_bound(direction, passable)

    def set_level(self, x: int, y: int, direction: Direction8, level: Level) -> None:
        """Set relative elevation towards a direction; the neighbor gets the inverse."""
        cell = self.get_cell(x, y)
        if cell is None:
            raise ValueError(f"No cell at ({x}, {y}) in {self!r}")
        other = self.neighbor(cell, direction)
        if other is not None:
            other._set_level(direction.invert(), level.inverse())
        cell._set_level(direction, level)

    def graphical_to_string(self) -> str:
        symbols = {CellKind.ROOM: '.', CellKind.EXIT: 'E',
                   CellKind.DOOR: 'D', CellKind.SAVE: 'S'}
        lines = []
        for row in self._cells:
            line = []
            for cell in row:
                if cell is None:
                    line.append('#')
                elif cell.occupant is not None:
                    line.append('I')
                else:
                    line.append(symbols[cell.kind])
            lines.append(''.join(line))
        return '\n'.join(lines)
