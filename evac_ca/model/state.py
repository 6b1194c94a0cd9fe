"""State snapshot dataclasses for the evacuation simulation."""

from dataclasses import dataclass, field
from typing import List, Dict


@dataclass(frozen=True)
class IndividualSnapshot:
    """Immutable snapshot of an individual's state at a given time step."""
    individual_id: int
    room_id: int
    x: int
    y: int
    status: str  # "unalarmed", "alarmed", "safe", "evacuated", "dead"


@dataclass(frozen=True)
class RoomSnapshot:
    """Occupancy of one room at a given time step."""
    room_id: int
    name: str
    occupants: int
    cells: int
    alarmed: bool

    @property
    def density(self) -> float:
        """Share of the room's cells that are occupied."""
        return self.occupants / self.cells if self.cells > 0 else 0.0


@dataclass
class SimulationState:
    """Complete snapshot of simulation state at a given time step."""
    step: int
    individuals: List[IndividualSnapshot]
    metrics: Dict[str, float]   # active, safe, not_safe, evacuated, dead, progress
    rooms: List[RoomSnapshot] = field(default_factory=list)

    def room(self, room_id: int) -> RoomSnapshot:
        for snapshot in self.rooms:
            if snapshot.room_id == room_id:
                return snapshot
        raise KeyError(f"No snapshot of room {room_id}")

    def to_csv_rows(self) -> List[Dict]:
        """Convert to CSV-compatible format."""
        return [
            {
                "step": self.step,
                "individual_id": i.individual_id,
                "room": i.room_id,
                "x": i.x,
                "y": i.y,
                "status": i.status
            }
            for i in self.individuals
        ]
