"""CSV export functionality for the evacuation simulation."""

import csv
from pathlib import Path
from typing import Dict, Iterator, Optional, TYPE_CHECKING

from ..model.recorder import (DieAction, ExitAction, MoveAction, StateChangedAction,
                              SwapAction)

if TYPE_CHECKING:
    from ..model.recorder import EvacuationRecording
    from ..model.state import SimulationState


class CSVWriter:
    """
    Exports per-step individual positions to CSV format incrementally.

    Output format:
        step,individual_id,room,x,y,status
        1,1,0,5,10,alarmed
        ...
    """

    FIELDNAMES = ['step', 'individual_id', 'room', 'x', 'y', 'status']

    def __init__(self, output_path: Path):
        self.output_path = Path(output_path)
        self.file: Optional[object] = None
        self.writer: Optional[csv.DictWriter] = None
        self._is_open = False
        self.rows_written = 0

    @property
    def is_open(self) -> bool:
        return self._is_open

    def open(self) -> None:
        """Initialize file and write header."""
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.file = open(self.output_path, 'w', newline='')
        self.writer = csv.DictWriter(self.file, fieldnames=self.FIELDNAMES)
        self.writer.writeheader()
        self._is_open = True

    def append(self, state: "SimulationState") -> None:
        """Write state data for current step."""
        if not self._is_open:
            self.open()
        for row in state.to_csv_rows():
            self.writer.writerow(row)
            self.rows_written += 1
        self.file.flush()

    def close(self) -> None:
        """Close file handle."""
        if self.file:
            self.file.close()
            self.file = None
            self.writer = None
            self._is_open = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


RECORDING_FIELDNAMES = ['time_step', 'action', 'individual_id', 'room', 'x', 'y',
                        'to_room', 'to_x', 'to_y', 'detail']


def recording_rows(recording: "EvacuationRecording") -> Iterator[Dict]:
    """Flatten recorded actions into CSV rows, one per action."""
    for time_step, action in recording:
        row = dict.fromkeys(RECORDING_FIELDNAMES, '')
        row['time_step'] = time_step
        if isinstance(action, MoveAction):
            row.update(action='move', individual_id=action.individual_id,
                       room=action.from_cell.room_id, x=action.from_cell.x, y=action.from_cell.y,
                       to_room=action.to_cell.room_id, to_x=action.to_cell.x, to_y=action.to_cell.y)
        elif isinstance(action, SwapAction):
            row.update(action='swap',
                       room=action.cell1.room_id, x=action.cell1.x, y=action.cell1.y,
                       to_room=action.cell2.room_id, to_x=action.cell2.x, to_y=action.cell2.y)
        elif isinstance(action, ExitAction):
            row.update(action='exit', individual_id=action.individual_id,
                       room=action.cell.room_id, x=action.cell.x, y=action.cell.y)
        elif isinstance(action, DieAction):
            row.update(action='die', individual_id=action.individual_id,
                       room=action.cell.room_id, x=action.cell.x, y=action.cell.y,
                       detail=action.cause.value)
        elif isinstance(action, StateChangedAction):
            row.update(action='state', detail=action.state.value)
        else:
            raise AssertionError(f"Unknown action {action!r}")
        yield row


def write_recording(recording: "EvacuationRecording", output_path: Path) -> int:
    """Write a recording as CSV. Returns the number of actions written."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with open(output_path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=RECORDING_FIELDNAMES)
        writer.writeheader()
        for row in recording_rows(recording):
            writer.writerow(row)
            count += 1
    return count
