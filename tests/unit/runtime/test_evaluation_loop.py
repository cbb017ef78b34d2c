"""Tests for the evaluation loop."""

import asyncio
import json

import pytest

from conductor.capabilities.manager import ModelManager
from conductor.pipeline.engine import PipelineEngine
from conductor.pipeline.retrieval import ObjectRetriever
from conductor.pipeline.types import PipelineStep
from conductor.plugins.registry import PluginRegistry
from conductor.providers.plugin import Executor, Plugin, PluginResult
from conductor.providers.stub import MODIFICATION_MARKER, PLANNING_MARKER, StubModelProvider
from conductor.runtime.loop import EvaluationLoop, LoopState
from conductor.runtime.memory import MemoryManager
from conductor.runtime.queue import EventQueue

NO_CHANGE = json.dumps({"shouldModify": False, "explanation": "fine", "modifiedSteps": None})


def planner(plan, modifications=()):
    """Scripted model: ``plan`` for planning prompts, then ``modifications`` in order."""
    pending = [json.dumps(m) for m in modifications]

    def respond(prompt):
        if PLANNING_MARKER in prompt:
            return json.dumps(plan)
        if MODIFICATION_MARKER in prompt:
            return pending.pop(0) if pending else NO_CHANGE
        return "generated"

    return respond


def step(plugin_id, action):
    return {"pluginId": plugin_id, "action": action}


class ToolPlugin(Plugin):
    """Plugin whose executors succeed, fail, raise or return nothing."""

    def __init__(self, id="plugin-tool"):
        super().__init__(id=id, name="Tool", description="Test tool")
        self.calls = []
        self.seen_current = []
        self.loop = None
        for name, fn in (
            ("ok", self._ok),
            ("fail", self._fail),
            ("fail_silently", self._fail_silently),
            ("raise", self._raise),
            ("nothing", self._nothing),
        ):
            self.add_executor(Executor(name=name, description=name, fn=fn))

    def _record(self, name, context):
        self.calls.append(name)
        if self.loop is not None:
            self.seen_current.append(self.loop.current is context)

    async def _ok(self, context):
        self._record("ok", context)
        return PluginResult.ok({"message": f"ok #{len(self.calls)}", "value": 42})

    async def _fail(self, context):
        self._record("fail", context)
        return PluginResult.fail("tool is broken")

    async def _fail_silently(self, context):
        self._record("fail_silently", context)
        return PluginResult(success=False)

    async def _raise(self, context):
        self._record("raise", context)
        raise ValueError("exploded")

    async def _nothing(self, context):
        self._record("nothing", context)
        return PluginResult.ok()


class DataPlugin(Plugin):
    """Returns fixed executor data."""

    def __init__(self, data):
        super().__init__(id="plugin-data", name="Data", description="Returns fixed data")
        self.data = data
        self.add_executor(Executor(name="read", description="Read data", fn=self._read))

    async def _read(self, context):
        return PluginResult.ok(self.data)


def build_loop(script, memory_provider, plugins=None, event_sink=None):
    provider = StubModelProvider(responses=script)
    models = ModelManager().register_provider(provider)
    memory = MemoryManager(memory_provider)
    registry = PluginRegistry().register_plugins(*(plugins or [ToolPlugin()]))
    engine = PipelineEngine(ObjectRetriever(models, max_retries=1), registry)
    queue = EventQueue(memory)
    loop = EvaluationLoop(
        queue, memory, engine, registry, poll_interval=0.005, event_sink=event_sink
    )
    for plugin in registry.all():
        if isinstance(plugin, ToolPlugin):
            plugin.loop = loop
    return loop, queue, provider


class TestExecutePipeline:
    """Test step execution semantics."""

    @pytest.mark.asyncio
    async def test_success_pushes_data_item(self, memory_provider, make_context):
        """Test executor data becomes a context item keyed by the step."""
        tool = ToolPlugin()
        loop, _, _ = build_loop(planner([]), memory_provider, [tool])
        context = make_context()

        await loop.execute_pipeline([PipelineStep(plugin_id="plugin-tool", action="ok")], context)

        item = context.context_chain.last
        assert item.plugin_id == "plugin-tool"
        assert item.action == "ok"
        assert item.type == "ok"
        assert item.message == "ok #1"
        assert json.loads(item.content) == {"message": "ok #1", "value": 42}
        assert item.id.startswith("plugin-tool-")

    @pytest.mark.asyncio
    async def test_success_without_data_adds_nothing(self, memory_provider, make_context):
        """Test a successful executor with no data leaves the chain unchanged."""
        loop, _, _ = build_loop(planner([]), memory_provider)
        context = make_context()

        await loop.execute_pipeline([PipelineStep(plugin_id="plugin-tool", action="nothing")], context)

        assert len(context.context_chain) == 1

    @pytest.mark.asyncio
    async def test_step_failures_become_error_items(self, memory_provider, make_context, event_sink):
        """Test every kind of step failure is recorded and execution continues."""
        tool = ToolPlugin()
        loop, _, _ = build_loop(planner([]), memory_provider, [tool], event_sink=event_sink)
        context = make_context()
        pipeline = [
            PipelineStep(plugin_id="plugin-missing", action="anything"),
            PipelineStep(plugin_id="plugin-tool", action="fail"),
            PipelineStep(plugin_id="plugin-tool", action="fail_silently"),
            PipelineStep(plugin_id="plugin-tool", action="raise"),
            None,
            PipelineStep(plugin_id="plugin-tool", action="ok"),
        ]

        await loop.execute_pipeline(pipeline, context)

        errors = context.context_chain.errors()
        assert [(e.plugin_id, e.action, e.error) for e in errors] == [
            ("plugin-missing", "plugin_not_found", "Plugin plugin-missing not found"),
            ("plugin-tool", "fail", "tool is broken"),
            ("plugin-tool", "fail_silently", "Unknown error"),
            ("plugin-tool", "raise", "exploded"),
            ("runtime", "invalid_step", "Invalid step encountered in pipeline"),
        ]
        assert errors[0].failed_step == pipeline[0]
        assert errors[4].failed_step is None
        assert all(e.content == e.error for e in errors)
        assert tool.calls == ["fail", "fail_silently", "raise", "ok"]
        assert context.context_chain.last.message == "ok #4"
        assert len(event_sink.of_type("pipeline.step.failed")) == 5

    @pytest.mark.asyncio
    async def test_dict_steps_are_accepted(self, memory_provider, make_context):
        """Test plain dict steps are validated, malformed ones are invalid steps."""
        tool = ToolPlugin()
        loop, _, _ = build_loop(planner([]), memory_provider, [tool])
        context = make_context()

        await loop.execute_pipeline([step("plugin-tool", "ok"), {"pluginId": ""}], context)

        assert tool.calls == ["ok"]
        assert context.context_chain.errors()[0].action == "invalid_step"

    @pytest.mark.asyncio
    async def test_modification_splices_remaining_steps(self, memory_provider, make_context):
        """Test a modification replaces only the steps after the current one."""
        tool = ToolPlugin()
        script = planner(
            [],
            modifications=[
                {
                    "shouldModify": True,
                    "explanation": "retry differently",
                    "modifiedSteps": [step("plugin-tool", "nothing")],
                }
            ],
        )
        loop, _, _ = build_loop(script, memory_provider, [tool])

        await loop.execute_pipeline(
            [
                PipelineStep(plugin_id="plugin-tool", action="fail"),
                PipelineStep(plugin_id="plugin-tool", action="raise"),
            ],
            make_context(),
        )

        assert tool.calls == ["fail", "nothing"]

    @pytest.mark.asyncio
    async def test_modification_runs_after_each_executed_step(self, memory_provider, make_context):
        """Test the planner is consulted after executed steps but not skipped ones."""
        loop, _, provider = build_loop(planner([]), memory_provider)

        await loop.execute_pipeline(
            [
                PipelineStep(plugin_id="plugin-tool", action="ok"),
                PipelineStep(plugin_id="plugin-missing", action="x"),
                PipelineStep(plugin_id="plugin-tool", action="raise"),
            ],
            make_context(),
        )

        assert sum(MODIFICATION_MARKER in p for p in provider.prompts) == 2


class TestProcess:
    """Test per-event processing."""

    @pytest.mark.asyncio
    async def test_plans_executes_and_persists(self, memory_provider, make_context, event_sink):
        """Test the full per-event sequence for a pushed event."""
        tool = ToolPlugin()
        loop, queue, _ = build_loop(
            planner([step("plugin-tool", "ok")]), memory_provider, [tool], event_sink=event_sink
        )
        context = make_context("do it")
        await queue.push(context)

        await loop.process(queue.shift())

        history = memory_provider.history_for("alice", "plugin-chat")
        assert [(m.role, m.content) for m in history] == [("user", "do it"), ("assistant", "ok #1")]
        assert memory_provider.assistant_contexts[0][-1]["message"] == "ok #1"
        assert loop.state is LoopState.IDLE
        assert loop.current is None
        assert tool.seen_current == [True]
        assert event_sink.types()[-1] == "runtime.event.completed"

    @pytest.mark.asyncio
    async def test_raw_put_event_is_recorded_once(self, memory_provider, make_context):
        """Test an event enqueued without push gets history and inbound storage at dequeue."""
        await memory_provider.store_user_interaction("alice", "plugin-chat", "before", 1)
        loop, queue, _ = build_loop(planner([]), memory_provider)
        context = make_context("raw")
        queue.put(context)

        await loop.process(queue.shift())

        assert [m.content for m in context.context_chain.first.message_history] == ["before"]
        assert [m.content for m in memory_provider.history_for("alice", "plugin-chat")] == [
            "before",
            "raw",
        ]

    @pytest.mark.asyncio
    async def test_empty_plan_stores_no_assistant_message(self, memory_provider, make_context):
        """Test nothing is persisted for the assistant when nothing ran."""
        loop, queue, _ = build_loop(planner([]), memory_provider)
        await queue.push(make_context("hello"))

        await loop.process(queue.shift())

        assert [m.role for m in memory_provider.history_for("alice", "plugin-chat")] == ["user"]

    @pytest.mark.asyncio
    async def test_planning_failure_is_recovered(self, memory_provider, make_context):
        """Test an unusable plan yields an empty pipeline, not an error."""
        loop, queue, _ = build_loop(lambda prompt: "no plan today", memory_provider)
        await queue.push(make_context())

        await loop.process(queue.shift())

        assert loop.state is LoopState.IDLE

    @pytest.mark.asyncio
    async def test_unexpected_error_moves_to_error_state(
        self, memory_provider, make_context, event_sink
    ):
        """Test errors outside step execution escape and set the error state."""

        async def broken_store(*args, **kwargs):
            raise ConnectionError("database gone")

        loop, queue, _ = build_loop(
            planner([step("plugin-tool", "ok")]), memory_provider, event_sink=event_sink
        )
        context = make_context()
        await queue.push(context)
        memory_provider.store_assistant_interaction = broken_store

        with pytest.raises(ConnectionError):
            await loop.process(queue.shift())

        assert loop.state is LoopState.ERROR
        assert loop.failed_context is context
        assert loop.current is None
        assert event_sink.types()[-1] == "runtime.loop.failed"


class TestStepData:
    """Test how executor data becomes a chain item."""

    @pytest.mark.asyncio
    async def test_data_overrides_base_fields(self, memory_provider, make_context):
        """Test data keys named like base fields, in either spelling, win."""
        data = {
            "id": "reading-1",
            "type": "reading",
            "content": "42 degrees",
            "timestamp": 5,
            "pluginId": "plugin-sensor",
            "message": "It is 42 degrees.",
        }
        loop, queue, _ = build_loop(
            planner([step("plugin-data", "read")]), memory_provider, [DataPlugin(data)]
        )
        context = make_context()
        await queue.push(context)

        await loop.process(queue.shift())

        item = context.context_chain.last
        assert (item.id, item.type, item.content, item.timestamp) == (
            "reading-1",
            "reading",
            "42 degrees",
            5,
        )
        assert item.plugin_id == "plugin-sensor"
        assert item.action == "read"
        assert item.message == "It is 42 degrees."
        assert context.context_chain.errors() == []
        assert loop.state is LoopState.IDLE

    @pytest.mark.parametrize(
        "data",
        [
            {"timestamp": "2024-01-01T00:00:00Z"},
            {"id": 7},
            {"content": {"a": 1}},
            {"type": None},
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_data_becomes_error_item(
        self, data, memory_provider, make_context, event_sink
    ):
        """Test data that cannot form a chain item is recorded as a step failure."""
        loop, queue, provider = build_loop(
            planner([step("plugin-data", "read")]),
            memory_provider,
            [DataPlugin(data)],
            event_sink=event_sink,
        )
        context = make_context()
        await queue.push(context)

        await loop.process(queue.shift())

        [error] = context.context_chain.errors()
        assert (error.plugin_id, error.action) == ("plugin-data", "read")
        assert error.error.startswith("Invalid result data from plugin-data:read")
        assert len(context.context_chain) == 2
        assert sum(MODIFICATION_MARKER in p for p in provider.prompts) == 1
        assert event_sink.of_type("pipeline.step.failed")[0].data["kind"] == "validation"
        assert loop.state is LoopState.IDLE
        assert event_sink.types()[-1] == "runtime.event.completed"


class TestRun:
    """Test the polling loop."""

    @pytest.mark.asyncio
    async def test_processes_events_in_fifo_order(self, memory_provider, make_context):
        """Test queued events are processed one at a time in enqueue order."""
        tool = ToolPlugin()
        loop, queue, _ = build_loop(planner([step("plugin-tool", "ok")]), memory_provider, [tool])
        for name in ("first", "second", "third"):
            await queue.push(make_context(name, user=name))

        task = asyncio.create_task(loop.run())
        await asyncio.wait_for(queue.join(), timeout=5)
        loop.stop()
        await asyncio.wait_for(task, timeout=5)

        users = [user for (user, _), _ in memory_provider.conversations.items()]
        assert users == ["first", "second", "third"]
        assert [memory_provider.history_for(u, "plugin-chat")[-1].content for u in users] == [
            "ok #1",
            "ok #2",
            "ok #3",
        ]
        assert tool.seen_current == [True, True, True]
        assert loop.is_running is False

    @pytest.mark.asyncio
    async def test_idle_loop_stops(self, memory_provider):
        """Test an idle loop returns after stop."""
        loop, _, _ = build_loop(planner([]), memory_provider)
        task = asyncio.create_task(loop.run())
        await asyncio.sleep(0.02)
        assert loop.is_running is True

        loop.stop()
        await asyncio.wait_for(task, timeout=1)
        assert loop.state is LoopState.IDLE

    @pytest.mark.asyncio
    async def test_fatal_error_stops_run(self, memory_provider, make_context):
        """Test a loop-fatal error propagates out of run."""

        async def broken_history(*args, **kwargs):
            raise ConnectionError("database gone")

        loop, queue, _ = build_loop(planner([]), memory_provider)
        queue.put(make_context())
        memory_provider.get_recent_conversation_history = broken_history

        with pytest.raises(ConnectionError):
            await asyncio.wait_for(loop.run(), timeout=5)

        assert loop.is_running is False
        assert loop.state is LoopState.ERROR
        assert loop.failed_context is not None
        assert queue.empty()
