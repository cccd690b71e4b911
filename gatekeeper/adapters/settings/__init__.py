"""SettingsProvider adapters serving the rate-limit settings snapshot."""

from gatekeeper.adapters.settings.base import SettingsProvider
from gatekeeper.adapters.settings.providers import JsonFileSettingsProvider, StaticSettingsProvider

__all__ = ["SettingsProvider", "StaticSettingsProvider", "JsonFileSettingsProvider"]
