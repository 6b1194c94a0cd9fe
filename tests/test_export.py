import csv
from pathlib import Path

from evac_ca.export.csv_writer import CSVWriter
from evac_ca.export.reporter import Reporter
from evac_ca.model.engine import EvacuationResult, EvacuationSimulation
from evac_ca.model.state import RoomSnapshot, SimulationState

from conftest import make_problem


def _state(step: int, evacuated: int, not_safe: int, occupants: int = 0) -> SimulationState:
    room = RoomSnapshot(room_id=0, name="hall", occupants=occupants, cells=4, alarmed=True)
    return SimulationState(step=step, individuals=[],
                           metrics={'evacuated': evacuated, 'not_safe': not_safe},
                           rooms=[room])


def test_room_snapshots_follow_occupancy(corridor) -> None:
    simulation = EvacuationSimulation(make_problem(corridor))
    simulation.initialize()

    state = simulation.step()
    hall = state.room(0)
    assert hall.occupants == 1
    assert hall.cells == 5
    assert hall.density == 0.2
    assert hall.alarmed

    while not simulation.is_finished():
        state = simulation.step()
    assert state.room(0).occupants == 0


def test_reporter_tracks_curve_and_room_peaks() -> None:
    reporter = Reporter("scenario.yaml", 7)
    for state in [_state(1, 0, 4, occupants=4), _state(2, 1, 3, occupants=3),
                  _state(3, 2, 2, occupants=2), _state(4, 4, 0)]:
        reporter.update(state)

    assert reporter.evacuation_curve() == [0, 1, 2, 4]
    assert reporter.step_reaching(0.5, 4) == 3
    assert reporter.step_reaching(0.5, 0) is None
    assert reporter.first_evacuation_step == 2
    assert reporter.peak_not_safe == 4
    assert reporter.room_peaks == {"hall": (4, 1.0)}


def test_reporter_counts_jams() -> None:
    reporter = Reporter("scenario.yaml", None)
    for step in range(1, Reporter.JAM_STEPS + 2):
        reporter.update(_state(step, 0, 3))

    assert reporter.jam_events == 1


def test_summary_lists_rooms_and_half_evacuation(tmp_path: Path) -> None:
    reporter = Reporter("scenario.yaml", 7)
    reporter.update(_state(1, 1, 1, occupants=1))
    reporter.update(_state(2, 2, 0))
    result = EvacuationResult(steps=2, seconds=0.8, initial_individuals=2, evacuated=2,
                              safe=0, dead_exit_unreachable=0, dead_not_enough_time=0)

    report = reporter.generate_summary(result, tmp_path, csv_enabled=False, record_enabled=False)

    assert "Half Evacuated:        step 1" in report
    assert "hall" in report
    assert "CSV Log:    (disabled)" in report


def test_csv_writer_appends_one_row_per_individual(corridor, tmp_path: Path) -> None:
    simulation = EvacuationSimulation(make_problem(corridor))
    simulation.initialize()
    path = tmp_path / "log.csv"

    with CSVWriter(path) as writer:
        writer.append(simulation.step())
        writer.append(simulation.step())
        assert writer.rows_written == 2
    assert not writer.is_open

    with path.open(newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["step"] for row in rows] == ["1", "2"]
    assert rows[1]["x"] == "2"
