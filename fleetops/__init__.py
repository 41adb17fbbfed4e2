"""Maintenance compliance tracking for a single aircraft."""
