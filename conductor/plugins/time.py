"""Time plugin: tells the agent the current local date and time."""

from __future__ import annotations

from datetime import datetime

from conductor.pipeline.context import AgentContext
from conductor.providers.plugin import Executor, Plugin, PluginResult

TIME_FORMAT = "%A, %B %d, %Y at %I:%M:%S %p %Z"


def format_current_time(now: datetime | None = None) -> str:
    """Human-readable local time, e.g. ``Monday, October 19, 2026 at 03:04:05 PM UTC``."""
    now = now or datetime.now().astimezone()
    return now.strftime(TIME_FORMAT).strip()


class TimePlugin(Plugin):
    def __init__(self) -> None:
        super().__init__(
            id="plugin-time",
            name="Time",
            description="Provides current time information",
        )
        self.add_executor(
            Executor(
                name="get_current_time",
                description="Gets the current localized date and time",
                fn=self.get_current_time,
            )
        )

    async def get_current_time(self, context: AgentContext) -> PluginResult:
        _ = context
        formatted = format_current_time()
        return PluginResult.ok(
            {
                "currentTime": formatted,
                "message": formatted,
                "helpfulInstruction": "This is the current time in the system timezone",
            }
        )
