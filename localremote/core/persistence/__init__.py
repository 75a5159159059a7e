"""Persistence: lock file and run history on disk."""
