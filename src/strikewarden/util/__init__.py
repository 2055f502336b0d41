"""
Utility helpers shared across strikewarden.

- **logger.py**: Centralized logging configuration with coloured console output
  through prompt_toolkit and a rotating per-session log file.

- **errors.py**: The error taxonomy (validation, not-found, storage, decode and
  enforcement failures) raised by the ledger, audit log and escalator.

- **time_utils.py**: UTC helpers and the fixed-width timestamp format used in
  the database.
"""
