"""Static and dynamic potentials (floor fields) for the evacuation CA."""

import heapq
import itertools
import math
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Tuple

import numpy as np
from scipy.ndimage import convolve

from .grid import Cell, CellKey, Direction8, Room

UNKNOWN = -1

_DIAGONAL_LENGTH = math.sqrt(2.0)


class Potential(ABC):
    """Maps cells to a non-negative cost. Unreachable cells map to UNKNOWN."""

    def __init__(self, dtype):
        self._dtype = dtype
        self._fill = UNKNOWN if dtype is np.float64 else 0
        self._values: Dict[int, np.ndarray] = {}

    def _array(self, room_id: int, height: int, width: int) -> np.ndarray:
        """Return the room's array, growing it to at least height x width."""
        values = self._values.get(room_id)
        if values is None:
            values = np.full((height, width), self._fill, dtype=self._dtype)
            self._values[room_id] = values
        elif values.shape[0] < height or values.shape[1] < width:
            grown = np.full((max(height, values.shape[0]), max(width, values.shape[1])),
                            self._fill, dtype=self._dtype)
            grown[:values.shape[0], :values.shape[1]] = values
            values = self._values[room_id] = grown
        return values

    def _lookup(self, cell: Cell):
        values = self._values.get(cell.room_id)
        if values is None or cell.y >= values.shape[0] or cell.x >= values.shape[1]:
            return self._fill
        return values[cell.y, cell.x]

    @abstractmethod
    def potential(self, cell: Cell):
        """Return the potential of the cell or UNKNOWN."""

    @abstractmethod
    def has_valid_potential(self, cell: Cell) -> bool:
        ...

    @abstractmethod
    def max_potential(self):
        ...

    def room_values(self, room_id: int) -> np.ndarray:
        """Copy of the raw per-room array."""
        return self._values[room_id].copy()


class StaticPotential(Potential):
    """
    Pre-computed distance field guiding individuals toward a group of exits.
    Lower value = closer to the exit. Immutable while a simulation runs.
    """

    def __init__(self, potential_id: int, name: str = ""):
        super().__init__(np.float64)
        self.id = potential_id
        self.name = name or f"potential-{potential_id}"
        self.exit_cells: List[CellKey] = []

    def __repr__(self) -> str:
        return f"StaticPotential(id={self.id}, name={self.name!r})"

    def potential(self, cell: Cell) -> float:
        return float(self._lookup(cell))

    def has_valid_potential(self, cell: Cell) -> bool:
        return self._lookup(cell) != UNKNOWN

    def max_potential(self) -> float:
        best = UNKNOWN
        for values in self._values.values():
            valid = values[values != UNKNOWN]
            if valid.size:
                best = max(best, float(valid.max()))
        return best

    def set_potential(self, cell: Cell, value: float) -> None:
        if value < 0:
            raise ValueError(f"Potential must not be negative, got {value}")
        self._array(cell.room_id, cell.y + 1, cell.x + 1)[cell.y, cell.x] = value

    def compute(self, rooms: Mapping[int, Room], exits: Iterable[Cell]) -> None:
        """
        Dijkstra relaxation outward from all exit cells at once.

        Entering a cell of speed factor s over a step of length l costs l / s,
        so the field strictly decreases along every shortest path to an exit.
        Cells with speed factor 0 are never entered.
        """
        self._values = {
            room.id: np.full((room.height, room.width), UNKNOWN, dtype=np.float64)
            for room in rooms.values()
        }
        exits = list(exits)
        self.exit_cells = [cell.key for cell in exits]

        # Door links are directed; the relaxation walks them backwards.
        incoming_doors: Dict[CellKey, List[Cell]] = defaultdict(list)
        for room in rooms.values():
            for door in room.doors():
                for target in door.door_targets:
                    incoming_doors[target].append(door)

        tie = itertools.count()
        heap: List[Tuple[float, int, Cell]] = []
        for cell in exits:
            self._values[cell.room_id][cell.y, cell.x] = 0.0
            heapq.heappush(heap, (0.0, next(tie), cell))

        while heap:
            dist, _, cell = heapq.heappop(heap)
            if dist > self._values[cell.room_id][cell.y, cell.x]:
                continue
            if cell.speed_factor <= 0:
                continue
            for predecessor, length in _predecessors(rooms, cell, incoming_doors):
                if predecessor.speed_factor <= 0:
                    continue
                candidate = dist + length / cell.speed_factor
                values = self._values[predecessor.room_id]
                current = values[predecessor.y, predecessor.x]
                if current == UNKNOWN or candidate < current:
                    values[predecessor.y, predecessor.x] = candidate
                    heapq.heappush(heap, (candidate, next(tie), predecessor))

    def clone(self) -> "StaticPotential":
        other = StaticPotential(self.id, self.name)
        other.exit_cells = list(self.exit_cells)
        other._values = {room_id: values.copy() for room_id, values in self._values.items()}
        return other


def _predecessors(rooms: Mapping[int, Room], cell: Cell,
                  incoming_doors: Mapping[CellKey, List[Cell]]):
    """Cells from which one step reaches `cell`, with the step length."""
    room = rooms[cell.room_id]
    for direction in Direction8:
        if not cell.is_passable(direction):
            continue
        other = room.neighbor(cell, direction)
        if other is not None:
            yield other, (_DIAGONAL_LENGTH if direction.is_diagonal else 1.0)
    for door in incoming_doors.get(cell.key, ()):
        yield door, 1.0


class DynamicPotential(Potential):
    """
    Crowd-density field. Individuals leave a trace that spreads to neighbors
    and decays probabilistically. Values are integers in [0, max_value].
    """

    # 8-neighborhood without the center: a charged cell feeds its neighbors.
    SPREAD_KERNEL = np.array([
        [1, 1, 1],
        [1, 0, 1],
        [1, 1, 1]
    ], dtype=np.int64)

    def __init__(self, max_value: int = 30):
        super().__init__(np.int64)
        if max_value <= 0:
            raise ValueError(f"Maximal dynamic potential must be positive, got {max_value}")
        self.max_value = max_value
        self._masks: Dict[int, np.ndarray] = {}

    def potential(self, cell: Cell) -> int:
        return int(self._lookup(cell))

    def has_valid_potential(self, cell: Cell) -> bool:
        return self._lookup(cell) > 0

    def max_potential(self) -> int:
        if not self._values:
            return 0
        return int(max(values.max() for values in self._values.values()))

    def set_potential(self, cell: Cell, value: int) -> None:
        if not 0 <= value <= self.max_value:
            raise ValueError(f"Dynamic potential must be within [0, {self.max_value}], got {value}")
        self._array(cell.room_id, cell.y + 1, cell.x + 1)[cell.y, cell.x] = value

    def increase(self, cell: Cell, amount: int = 1) -> None:
        values = self._array(cell.room_id, cell.y + 1, cell.x + 1)
        values[cell.y, cell.x] = min(self.max_value, values[cell.y, cell.x] + amount)

    def decrease(self, cell: Cell, amount: int = 1) -> None:
        values = self._array(cell.room_id, cell.y + 1, cell.x + 1)
        values[cell.y, cell.x] = max(0, values[cell.y, cell.x] - amount)

    def _mask(self, room: Room) -> np.ndarray:
        mask = self._masks.get(room.id)
        if mask is None or mask.shape != (room.height, room.width):
            mask = np.zeros((room.height, room.width), dtype=bool)
            for cell in room.all_cells():
                mask[cell.y, cell.x] = True
            self._masks[room.id] = mask
        return mask

    def update(self, rooms: Iterable[Room], probability_increase: float,
               probability_decrease: float, rng: np.random.Generator) -> None:
        """
        One diffusion/decay round.

        Every charged cell spreads one unit to each existing neighbor with
        probability_increase and loses one unit with probability_decrease.
        """
        for room in rooms:
            values = self._array(room.id, room.height, room.width)[:room.height, :room.width]
            mask = self._mask(room)
            charged = values > 0
            if not charged.any():
                continue
            spreading = charged & (rng.random(values.shape) < probability_increase)
            gained = convolve(spreading.astype(np.int64), self.SPREAD_KERNEL,
                              mode='constant', cval=0)
            decayed = charged & (rng.random(values.shape) < probability_decrease)

            updated = values + gained - decayed.astype(np.int64)
            updated[~mask] = 0
            np.clip(updated, 0, self.max_value, out=updated)
            values[...] = updated

    def reset(self) -> None:
        for values in self._values.values():
            values.fill(0)

    def clone(self) -> "DynamicPotential":
        other = DynamicPotential(self.max_value)
        other._values = {room_id: values.copy() for room_id, values in self._values.items()}
        return other
