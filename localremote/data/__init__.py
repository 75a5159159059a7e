"""Bundled templates (cloud-init user-data, Home Manager user config)."""
