import csv
from pathlib import Path

import pytest

from evac_ca.config import ParameterSet, load_config, parse_config
from evac_ca.main import main
from evac_ca.model.building import build_problem, wall_cells
from evac_ca.model.grid import CellKind
from evac_ca.model.rules import ReactionRuleCompleteRoom, SwapMovementRule

OFFICE = Path(__file__).resolve().parent.parent / "configs" / "office.yaml"


def _raw(**overrides):
    raw = {
        "simulation": {"max_steps": 50, "seed": 1},
        "floors": ["ground"],
        "rooms": [
            {"id": 0, "width": 5, "height": 3, "exits": [[4, 1]],
             "walls": [{"type": "points", "coords": [[2, 0]]}]},
        ],
        "individuals": [{"room": 0, "x": 0, "y": 1, "speed": 0.9}],
    }
    raw.update(overrides)
    return raw


def test_parse_minimal_scenario() -> None:
    config = parse_config(_raw())

    assert config.max_steps == 50
    assert config.order == "in_order"
    assert config.parameters == ParameterSet()
    assert config.rooms[0].exits == [(4, 1)]
    assert config.individuals[0].relative_speed == 0.9
    assert config.rules.loop == ["reaction_room", "movement", "save", "evacuate"]


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValueError):
        parse_config(_raw(simulation={"max_steps": 5, "order": "alphabetical"}))
    with pytest.raises(ValueError):
        parse_config(_raw(parameters={"probability_dynamic_decrease": 1.5}))
    with pytest.raises(ValueError):
        parse_config(_raw(rooms=[{"id": 0, "width": 2, "height": 2,
                                  "walls": [{"type": "circle"}]}]))


def test_wall_rectangles_are_clamped() -> None:
    config = parse_config(_raw(rooms=[{"id": 0, "width": 3, "height": 2, "walls": [
        {"type": "rectangle", "x": 2, "y": 1, "width": 4, "height": 4}]}]))

    assert wall_cells(config.rooms[0].walls, 3, 2) == {(2, 1)}


def test_build_problem_from_scenario() -> None:
    problem = build_problem(parse_config(_raw()))
    automaton = problem.automaton

    assert automaton.get_cell(0, 4, 1).kind is CellKind.EXIT
    assert not automaton.exists_at(0, 2, 0)
    assert automaton.individual(1).static_potential is not None
    assert problem.step_limit == 50


def test_exit_inside_a_wall_is_rejected() -> None:
    raw = _raw(rooms=[{"id": 0, "width": 3, "height": 1, "exits": [[1, 0]],
                       "walls": [{"type": "points", "coords": [[1, 0]]}]}], individuals=[])
    with pytest.raises(ValueError):
        build_problem(parse_config(raw))


def test_office_scenario_loads() -> None:
    config = load_config(OFFICE)
    problem = build_problem(config)
    automaton = problem.automaton

    assert len(automaton.rooms) == 2
    assert automaton.individual_count == 46
    assert len(automaton.static_potentials) == 1
    door = automaton.get_cell(0, 15, 5)
    assert door.kind is CellKind.DOOR
    assert automaton.get_cell(1, 0, 5).key in door.door_targets
    assert door.key in automaton.get_cell(1, 0, 5).door_targets
    assert automaton.get_cell(1, 4, 6).speed_factor == 0.5
    assert isinstance(problem.rule_set.movement_rule, SwapMovementRule)
    assert any(isinstance(rule, ReactionRuleCompleteRoom) for rule in problem.rule_set)
    assert all(i.static_potential is not None for i in automaton.individuals)


def test_spawn_needs_enough_free_cells() -> None:
    raw = _raw(spawn=[{"room": 0, "count": 100}])
    with pytest.raises(ValueError):
        build_problem(parse_config(raw))


def test_cli_run_writes_exports(tmp_path: Path) -> None:
    exit_code = main(["--config", str(OFFICE), "--out-dir", str(tmp_path),
                      "--steps", "40", "--record", "--quiet"])

    assert exit_code == 0
    with (tmp_path / "simulation_log.csv").open(newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert rows[0]["step"] == "1"
    assert {row["individual_id"] for row in rows} == {str(i) for i in range(1, 47)}
    with (tmp_path / "recording.csv").open(newline="") as handle:
        actions = list(csv.DictReader(handle))
    assert actions[0]["action"] == "state"
    assert actions[-1]["detail"] == "finished"


def test_cli_reports_missing_config(tmp_path: Path) -> None:
    assert main(["--config", str(tmp_path / "missing.yaml"), "--quiet"]) == 1
