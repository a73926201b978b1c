"""Datamine exporter - spreadsheet grid data to per-sheet JSON records."""

__version__ = "0.1.0"
