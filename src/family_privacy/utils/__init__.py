"""Utility helpers for the privacy governance engine."""
