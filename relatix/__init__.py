"""Relatix - a quiz game for practising English relative clauses."""

__version__ = "1.0.0"
