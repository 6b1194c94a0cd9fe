"""Evacuation simulation on a floor field cellular automaton."""

__version__ = "0.1.0"
