"""Grouping of adjacent exit cells."""

from typing import TYPE_CHECKING, List, Set

from .grid import Cell

if TYPE_CHECKING:
    from .automaton import EvacuationCellularAutomaton


def cluster_exit_cells(automaton: "EvacuationCellularAutomaton") -> List[List[Cell]]:
    """
    Partition the exit cells into maximal groups connected through
    8-neighbor adjacency between exit cells.

    Clusters come out in exit registration order; within a cluster cells are
    in depth-first visiting order.
    """
    seen: Set[Cell] = set()
    clusters: List[List[Cell]] = []
    for exit_cell in automaton.exits:
        if exit_cell in seen:
            continue
        cluster = []
        stack = [exit_cell]
        seen.add(exit_cell)
        while stack:
            cell = stack.pop()
            cluster.append(cell)
            for neighbor in automaton.neighbors(cell, passable_only=False):
                if neighbor.is_exit and neighbor not in seen:
                    seen.add(neighbor)
                    stack.append(neighbor)
        clusters.append(cluster)
    return clusters
