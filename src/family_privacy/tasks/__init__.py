"""Periodic lifecycle sweeps."""
