"""Spreadsheet -> device contacts import pipeline."""

__version__ = "0.1.0"
