"""I/O package for the evacuation simulation."""

from .csv_writer import CSVWriter, write_recording
from .reporter import Reporter

__all__ = ['CSVWriter', 'Reporter', 'write_recording']
