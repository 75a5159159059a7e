"""Core: models, configuration, engine and services."""
