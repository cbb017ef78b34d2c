"""Event queue, evaluation loop and the runtime that owns them."""

from conductor.runtime.loop import EvaluationLoop, LoopState
from conductor.runtime.memory import MemoryManager
from conductor.runtime.queue import EventQueue
from conductor.runtime.runtime import Runtime

__all__ = ["EvaluationLoop", "EventQueue", "LoopState", "MemoryManager", "Runtime"]
