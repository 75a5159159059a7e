"""CLI sub-command groups, registered by ``localremote.main``."""
