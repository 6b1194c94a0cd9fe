import pytest

from evac_ca.model.automaton import AutomatonState
from evac_ca.model.engine import EvacuationSimulation, IndividualOrder, order_individuals
from evac_ca.model.individual import DeathCause, IndividualStatus

from conftest import make_automaton, make_problem, make_room


def _conserved(automaton) -> bool:
    total = (automaton.individual_count + len(automaton.evacuated_individuals)
             + len(automaton.dead_individuals))
    return total == automaton.initial_individual_count


def test_corridor_reaches_exit_after_four_steps(corridor) -> None:
    simulation = EvacuationSimulation(make_problem(corridor, loop=["reaction_room", "movement", "save"]))
    simulation.initialize()

    for _ in range(4):
        state = simulation.step()

    individual = corridor.individual(1)
    assert individual.cell == corridor.get_cell(0, 4, 0).key
    assert individual.status is IndividualStatus.SAFE
    assert state.step == 4
    assert state.individuals[0].x == 4
    assert state.metrics['not_safe'] == 0


def test_corridor_run_evacuates(corridor) -> None:
    progress = []
    simulation = EvacuationSimulation(make_problem(corridor), progress_callback=progress.append)

    result = simulation.run()

    assert result.evacuated == 1
    assert result.dead == 0
    assert corridor.state is AutomatonState.FINISHED
    assert corridor.evacuated_individuals[0].safety_time == 4
    assert progress[-1] == pytest.approx(1.0)
    assert progress == sorted(progress)


def test_finished_only_after_needed_time(corridor) -> None:
    simulation = EvacuationSimulation(make_problem(corridor))
    simulation.initialize()
    while not simulation.is_finished():
        simulation.step()

    assert simulation.current_step > simulation.needed_time
    assert simulation.needed_time == 4


def test_step_limit_kills_stragglers(corridor) -> None:
    simulation = EvacuationSimulation(make_problem(corridor, step_limit=2))
    simulation.initialize()
    while not simulation.is_finished():
        simulation.step()
    result = simulation.terminate()

    individual = corridor.dead_individuals[0]
    assert individual.death_cause is DeathCause.NOT_ENOUGH_TIME
    assert result.dead_not_enough_time == 1
    assert result.steps == 2
    assert corridor.state is AutomatonState.FINISHED


def test_unreachable_individuals_die_at_initialization() -> None:
    automaton = make_automaton([make_room(0, 4, 1, exits=[(3, 0)], walls=[(1, 0)])],
                               individuals=[(0, 0, 0), (0, 2, 0)])
    simulation = EvacuationSimulation(make_problem(automaton))
    simulation.initialize()

    assert automaton.dead_count(DeathCause.EXIT_UNREACHABLE) == 1
    result = simulation.run()
    assert result.evacuated == 1
    assert result.dead_exit_unreachable == 1


def test_individuals_are_conserved_in_a_crowd() -> None:
    room = make_room(0, 6, 4, exits=[(5, 1), (5, 2)], walls=[(3, 0), (3, 3)])
    automaton = make_automaton([room],
                               individuals=[(0, x, y) for x in range(3) for y in range(4)])
    simulation = EvacuationSimulation(make_problem(automaton, loop=["reaction", "swap_movement",
                                                                    "save", "evacuate"],
                                                   step_limit=200),
                                      order=IndividualOrder.RANDOM, seed=11)
    simulation.initialize()
    while not simulation.is_finished():
        simulation.step()
        assert _conserved(automaton)
        occupied = [c for c in room.all_cells() if c.occupant is not None]
        assert len(occupied) == automaton.individual_count
    result = simulation.terminate()

    assert result.evacuated + result.dead + result.safe == 12
    assert _conserved(automaton)


def test_same_seed_same_run() -> None:
    def run(seed):
        room = make_room(0, 5, 5, exits=[(4, 2)])
        automaton = make_automaton([room], individuals=[(0, 0, y) for y in range(5)])
        simulation = EvacuationSimulation(make_problem(automaton), order=IndividualOrder.RANDOM,
                                          seed=seed)
        simulation.initialize()
        return [simulation.step().to_csv_rows() for _ in range(6)]

    assert run(5) == run(5)


def test_distance_orders() -> None:
    automaton = make_automaton([make_room(0, 6, 1, exits=[(5, 0)], walls=[(1, 0)])],
                               individuals=[(0, 2, 0), (0, 4, 0), (0, 0, 0), (0, 3, 0)])
    rng = None

    front = order_individuals(automaton, IndividualOrder.FRONT_TO_BACK, rng)
    back = order_individuals(automaton, IndividualOrder.BACK_TO_FRONT, rng)

    assert [i.id for i in front] == [2, 4, 1, 3]
    assert [i.id for i in back] == [1, 4, 2, 3]
    assert [i.id for i in order_individuals(automaton, IndividualOrder.IN_ORDER, rng)] == [1, 2, 3, 4]


def test_lifecycle_misuse(corridor) -> None:
    simulation = EvacuationSimulation(make_problem(corridor))
    with pytest.raises(RuntimeError):
        simulation.step()
    simulation.initialize()
    with pytest.raises(RuntimeError):
        simulation.initialize()
    simulation.terminate()
    with pytest.raises(RuntimeError):
        simulation.step()
