"""Proposal calendar: unified event aggregation and recurrence expansion."""

__version__ = "0.1.0"
