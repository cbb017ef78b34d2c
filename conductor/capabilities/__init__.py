"""Capability routing across model providers."""

from conductor.capabilities.constants import (
    IMAGE_GENERATION_CAPABILITY,
    REQUIRED_CAPABILITIES,
    TEXT_GENERATION_CAPABILITY,
)
from conductor.capabilities.manager import ModelManager
from conductor.capabilities.registry import CapabilityRegistry

__all__ = [
    "CapabilityRegistry",
    "ModelManager",
    "IMAGE_GENERATION_CAPABILITY",
    "REQUIRED_CAPABILITIES",
    "TEXT_GENERATION_CAPABILITY",
]
