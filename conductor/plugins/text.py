"""Text generation plugin: answers the user with the text-generation capability."""

from __future__ import annotations

import json
from typing import Any

from conductor.capabilities.constants import TEXT_GENERATION_CAPABILITY
from conductor.pipeline.context import AgentContext, get_user_input
from conductor.providers.base import ModelRequestConfig
from conductor.providers.plugin import Executor, Plugin, PluginResult

GENERATION_TEMPERATURE = 0.7


def generate_text_template(message: str, context_chain: list[dict[str, Any]]) -> str:
    return f"""Respond to the user's message below. Use the context gathered so far
(results of earlier actions, errors, conversation history) where it helps.

Context:
{json.dumps(context_chain, indent=2, default=str)}

User message:
{message}

Reply with the response text only."""


class TextGenerationPlugin(Plugin):
    def __init__(self) -> None:
        super().__init__(
            id="plugin-text",
            name="Text Generation",
            description="Provides text generation capabilities",
            required_capabilities=[TEXT_GENERATION_CAPABILITY],
        )
        self.add_executor(
            Executor(
                name="generate_text",
                description="Generates text in response to a prompt",
                fn=self.generate_text,
            )
        )

    async def generate_text(self, context: AgentContext) -> PluginResult:
        user_input = get_user_input(context)
        if user_input is None:
            return PluginResult.fail("No user input found in context chain")

        generated = await self.runtime.execute_capability(
            TEXT_GENERATION_CAPABILITY,
            generate_text_template(user_input.raw_message, context.context_chain.render()),
            ModelRequestConfig(temperature=GENERATION_TEMPERATURE),
        )
        return PluginResult.ok({"text": generated, "message": generated})
