"""Model package for the evacuation cellular automaton."""

from .state import IndividualSnapshot, RoomSnapshot, SimulationState
from .grid import Cell, CellKey, CellKind, Direction8, Level, Room
from .individual import DeathCause, Individual, IndividualStatus
from .potential import UNKNOWN, DynamicPotential, StaticPotential
from .automaton import AutomatonState, EvacuationCellularAutomaton
from .recorder import ActionRecorder, EvacuationRecording, InitialConfiguration
from .clustering import cluster_exit_cells
from .rules import EvacuationState, Rule, RuleSet
from .engine import (EvacuationProblem, EvacuationResult, EvacuationSimulation,
                     IndividualOrder)
from .building import build_automaton, build_problem

__all__ = [
    'IndividualSnapshot',
    'RoomSnapshot',
    'SimulationState',
    'Cell',
    'CellKey',
    'CellKind',
    'Direction8',
    'Level',
    'Room',
    'DeathCause',
    'Individual',
    'IndividualStatus',
    'UNKNOWN',
    'DynamicPotential',
    'StaticPotential',
    'AutomatonState',
    'EvacuationCellularAutomaton',
    'ActionRecorder',
    'EvacuationRecording',
    'InitialConfiguration',
    'cluster_exit_cells',
    'EvacuationState',
    'Rule',
    'RuleSet',
    'EvacuationProblem',
    'EvacuationResult',
    'EvacuationSimulation',
    'IndividualOrder',
    'build_automaton',
    'build_problem',
]
