"""Command line interface (``contact-importer`` / ``python -m contact_importer.cli``)."""

from .__main__ import main

__all__ = ["main"]
