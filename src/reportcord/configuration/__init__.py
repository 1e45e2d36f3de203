"""
Configuration management for Reportcord.

- **app_configuration.py**: File-locked YAML configuration loader for global
  settings: classifier endpoint and sampling parameters, report seed defaults,
  cleanup interval, notification channel and database path.

- **ai_settings.py**: Typed accessors for the classifier section.
"""
