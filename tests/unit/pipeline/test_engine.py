"""Tests for pipeline generation and modification."""

import json

import pytest

from conductor.capabilities.manager import ModelManager
from conductor.pipeline.context import ContextChain, ContextItem, ConversationMessage
from conductor.pipeline.engine import PipelineEngine
from conductor.pipeline.retrieval import ObjectRetriever
from conductor.pipeline.types import PipelineStep
from conductor.plugins.registry import PluginRegistry
from conductor.plugins.time import TimePlugin
from conductor.providers.stub import StubModelProvider

TIME_STEP = {"pluginId": "plugin-time", "action": "get_current_time"}
TEXT_STEP = {"pluginId": "plugin-text", "action": "generate_text"}


def _engine(responses, event_sink=None, max_retries=3):
    provider = StubModelProvider(responses=responses)
    manager = ModelManager().register_provider(provider)
    plugins = PluginRegistry().register_plugins(TimePlugin())
    retriever = ObjectRetriever(manager, max_retries=max_retries)
    return PipelineEngine(retriever, plugins, temperature=0.2, event_sink=event_sink), provider


class TestGenerate:
    """Test pipeline generation."""

    @pytest.mark.asyncio
    async def test_generates_pipeline(self, make_context, event_sink):
        """Test a valid plan is parsed into steps."""
        engine, provider = _engine([json.dumps([TIME_STEP])], event_sink=event_sink)
        context = make_context("what time is it?")

        pipeline = await engine.generate(context)

        assert pipeline == [PipelineStep(plugin_id="plugin-time", action="get_current_time")]
        prompt = provider.prompts[0]
        assert "what time is it?" in prompt
        assert "get_current_time" in prompt
        assert provider.configs[0].temperature == 0.2
        assert event_sink.of_type("pipeline.generation.succeeded")[0].data["steps"] == [
            "plugin-time:get_current_time"
        ]

    @pytest.mark.asyncio
    async def test_includes_conversation_history(self, make_context):
        """Test history attached to the user input reaches the prompt."""
        engine, provider = _engine(["[]"])
        context = make_context("and now?")
        context.context_chain.first.message_history = [
            ConversationMessage(role="user", content="remember the cheese", timestamp=1)
        ]

        await engine.generate(context)
        assert "remember the cheese" in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_failure_yields_empty_pipeline(self, make_context, event_sink):
        """Test generation fails open to an empty plan."""
        engine, _ = _engine(["garbage"] * 3, event_sink=event_sink)

        assert await engine.generate(make_context()) == []
        assert event_sink.types()[-1] == "pipeline.generation.failed"

    @pytest.mark.asyncio
    async def test_unrenderable_chain_yields_empty_pipeline(self, make_context, event_sink):
        """Test a chain that cannot be rendered into the prompt fails open."""

        class Attachment:
            pass

        engine, provider = _engine([json.dumps([TIME_STEP])], event_sink=event_sink)
        context = make_context()
        context.context_chain.append(
            ContextItem(
                id="upload-1",
                plugin_id="plugin-chat",
                action="upload",
                type="upload",
                attachment=Attachment(),
            )
        )

        assert await engine.generate(context) == []
        assert provider.prompts == []
        assert event_sink.types()[-1] == "pipeline.generation.failed"

    @pytest.mark.asyncio
    async def test_without_user_input(self, make_context):
        """Test events without user input are planned with defaults."""
        engine, provider = _engine(["[]"])
        context = make_context()
        context.context_chain = ContextChain(
            [ContextItem(id="t", plugin_id="plugin-timer", action="tick", type="tick")]
        )
        assert await engine.generate(context) == []
        assert "Platform: unknown" in provider.prompts[0]


class TestEvaluateModification:
    """Test pipeline modification."""

    @pytest.mark.asyncio
    async def test_returns_modification(self, make_context):
        """Test a requested modification is parsed."""
        engine, _ = _engine(
            [
                json.dumps(
                    {"shouldModify": True, "explanation": "need text", "modifiedSteps": [TEXT_STEP]}
                )
            ]
        )
        step = PipelineStep(plugin_id="plugin-time", action="get_current_time")

        modification = await engine.evaluate_modification(make_context(), step, [step])

        assert modification.should_modify is True
        assert modification.modified_steps == [
            PipelineStep(plugin_id="plugin-text", action="generate_text")
        ]

    @pytest.mark.asyncio
    async def test_failure_yields_no_change(self, make_context, event_sink):
        """Test modification fails safe to no change."""
        engine, _ = _engine(["nope"], event_sink=event_sink, max_retries=1)
        step = PipelineStep(plugin_id="plugin-time", action="get_current_time")

        modification = await engine.evaluate_modification(make_context(), step, [step])

        assert modification.should_modify is False
        assert modification.modified_steps is None
        assert event_sink.types()[-1] == "pipeline.modification.failed"


class TestSplice:
    """Test splice."""

    def _steps(self, *names):
        return [PipelineStep(plugin_id="p", action=name) for name in names]

    def test_keeps_prefix_and_replaces_rest(self):
        """Test steps up to the index are kept and the rest replaced."""
        pipeline = self._steps("a", "b", "c", "d")
        spliced = PipelineEngine.splice(pipeline, 1, self._steps("x", "y"))
        assert [s.action for s in spliced] == ["a", "b", "x", "y"]
        assert [s.action for s in pipeline] == ["a", "b", "c", "d"]

    def test_empty_modification_truncates(self):
        """Test an empty modification drops the remaining steps."""
        spliced = PipelineEngine.splice(self._steps("a", "b", "c"), 0, [])
        assert [s.action for s in spliced] == ["a"]

    def test_prefix_never_changes(self):
        """Test every index keeps its executed prefix unchanged."""
        pipeline = self._steps("a", "b", "c")
        for index in range(len(pipeline)):
            spliced = PipelineEngine.splice(pipeline, index, self._steps("z"))
            assert spliced[: index + 1] == pipeline[: index + 1]

    def test_out_of_range(self):
        """Test an index outside the pipeline is rejected."""
        with pytest.raises(IndexError):
            PipelineEngine.splice(self._steps("a"), 1, [])
