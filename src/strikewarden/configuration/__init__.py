"""
Configuration management for strikewarden.

- **app_configuration.py**: YAML configuration loader (shared file lock) for the
  database path, default group settings, audit limits and analytics constants.
  Falls back to built-in defaults on a missing or malformed file.

- **group_settings.py**: per-group settings persisted in SQLite and merged over
  the defaults, the keyword whitelist and the group/user directory.
"""
