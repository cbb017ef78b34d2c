"""Plugin registry and reference plugins."""

from conductor.plugins.registry import PluginRegistry
from conductor.plugins.text import TextGenerationPlugin
from conductor.plugins.time import TimePlugin

__all__ = ["PluginRegistry", "TextGenerationPlugin", "TimePlugin"]
