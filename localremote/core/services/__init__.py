"""
Services: one module per provisioning concern.

Services raise domain errors; the installer registry, the executor and
the CLI turn them into receipts and messages.
"""
