"""
Back-ends module for noxium transformations.

Back-ends are the opaque capabilities the orchestrator dispatches to. The
orchestrator sequences, validates, stages and contains failures; the
back-ends do the actual compiling, minifying, bundling and lowering.

Usage:
    from noxium.backends import CapabilityRegistry, CommandBackend

    registry = CapabilityRegistry()
    registry.register("minify", CommandBackend(["terser", "{input}", "-o", "{output}"]))

    # Or use factory with defaults
    registry = CapabilityRegistry.create_default()
"""

from noxium.backends.base import Backend, CallableBackend, NoOpBackend
from noxium.backends.command import CommandBackend, WasmCommandBackend
from noxium.backends.registry import CapabilityRegistry
from noxium.backends.text import ConcatBundleBackend, RegexTransformBackend

__all__ = [
    "Backend",
    "CallableBackend",
    "NoOpBackend",
    "CommandBackend",
    "WasmCommandBackend",
    "CapabilityRegistry",
    "ConcatBundleBackend",
    "RegexTransformBackend",
]
