"""Plugins shipped with the distribution (registered as entry points)."""
