"""Upstream client and catalog synchronisation services."""
