"""Plugin registry.

Plugins are registered once at startup, keyed by id, and kept in
registration order. The planner sees them through :meth:`PluginRegistry.describe`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from conductor.exceptions import InvalidPluginError, PluginIdCollisionError, PluginNotFoundError
from conductor.pipeline.types import ExecutorDescriptor, PluginDescriptor
from conductor.providers.plugin import Plugin
from conductor.telemetry import EventSink, get_event_sink

if TYPE_CHECKING:
    from conductor.runtime.runtime import Runtime

logger = logging.getLogger("plugins")


class PluginRegistry:
    """Registry of plugins keyed by id."""

    def __init__(self, event_sink: EventSink | None = None) -> None:
        self._plugins: dict[str, Plugin] = {}
        self._event_sink = event_sink or get_event_sink()
        self._initialized = False

    def register(self, plugin: Plugin) -> None:
        """Register a plugin.

        Raises:
            InvalidPluginError: Empty id or missing executor/execute members.
            PluginIdCollisionError: A plugin with the same id is already registered.
        """
        plugin_id = getattr(plugin, "id", None)
        if not isinstance(plugin_id, str) or not plugin_id:
            logger.error(
                "plugin id validation failed",
                extra={"service": "plugins", "error": "ID cannot be empty"},
            )
            raise InvalidPluginError("Plugin ID cannot be empty")

        if not callable(getattr(plugin, "execute", None)) or not isinstance(
            getattr(plugin, "executors", None), list
        ):
            raise InvalidPluginError(
                f"Plugin {plugin_id} must define 'executors' and 'execute'",
                details={"plugin_id": plugin_id},
            )

        if plugin_id in self._plugins:
            registered = list(self._plugins)
            logger.error(
                "plugin id collision",
                extra={
                    "service": "plugins",
                    "plugin_id": plugin_id,
                    "metadata": {"registered_plugins": registered},
                },
            )
            raise PluginIdCollisionError(plugin_id, registered)

        self._plugins[plugin_id] = plugin
        self._event_sink.try_emit(
            type="plugin.registered",
            data={
                "plugin_id": plugin_id,
                "executors": [e.name for e in plugin.executors],
                "triggers": [t.id for t in plugin.triggers],
            },
        )
        logger.debug(
            f"plugin \"{plugin_id}\" registered",
            extra={"service": "plugins", "plugin_id": plugin_id},
        )

    def register_plugins(self, *plugins: Plugin) -> PluginRegistry:
        for plugin in plugins:
            self.register(plugin)
        return self

    def get(self, plugin_id: str) -> Plugin:
        """Get a plugin by id.

        Raises:
            PluginNotFoundError: If no plugin is registered under ``plugin_id``.
        """
        plugin = self._plugins.get(plugin_id)
        if plugin is None:
            raise PluginNotFoundError(plugin_id, list(self._plugins))
        return plugin

    def has(self, plugin_id: str) -> bool:
        return plugin_id in self._plugins

    def all(self) -> list[Plugin]:
        return list(self._plugins.values())

    def describe(self) -> list[PluginDescriptor]:
        """The plugin roster shown to the planner."""
        return [
            PluginDescriptor(
                id=plugin.id,
                name=plugin.name,
                description=plugin.description,
                executors=[
                    ExecutorDescriptor(name=e.name, description=e.description)
                    for e in plugin.executors
                ],
            )
            for plugin in self._plugins.values()
        ]

    async def init(self, runtime: Runtime) -> None:
        """Attach the runtime handle and run every plugin's ``init`` concurrently, once."""
        if self._initialized:
            return
        self._initialized = True

        for plugin in self._plugins.values():
            plugin.attach_runtime(runtime)

        await asyncio.gather(*(plugin.init(runtime) for plugin in self._plugins.values()))
        logger.info(
            "plugins initialized",
            extra={"service": "plugins", "metadata": {"plugins": list(self._plugins)}},
        )

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self._plugins
