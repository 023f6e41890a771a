"""Settings store backed by the application configuration.

Providers read their credentials through this store on every call, so
overrides applied at runtime take effect without rebuilding providers.
"""

from podtrack.config import get_config


class EnvironmentSettingsStore:
    """Reads settings from pydantic settings, with optional in-memory overrides."""

    def __init__(self, overrides: dict[str, str] | None = None) -> None:
        self._overrides = dict(overrides or {})

    def get_setting(self, key: str) -> str | None:
        if key in self._overrides:
            value = self._overrides[key]
        else:
            value = get_config(key)
        if value is None:
            return None
        value = str(value)
        return value or None

    def set_override(self, key: str, value: str) -> None:
        self._overrides[key] = value
