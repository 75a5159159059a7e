"""Engine: command execution and install/update orchestration."""
