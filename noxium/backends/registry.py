"""
Capability Registry mapping job kinds to back-ends.

The registry is filled once at start-up and only read afterwards, so any
number of in-flight jobs may resolve from it concurrently. Replacing an
entry is refused unless the registry (or the call) allows it.
"""

import logging
from typing import TYPE_CHECKING, Optional

from noxium.errors import DuplicateCapability, UnknownCapability
from noxium.schemas import JobKind

from .base import Backend, NoOpBackend

if TYPE_CHECKING:
    from noxium.config import NoxiumConfig

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """
    Registry for back-end dispatch by job kind.

    Usage:
        registry = CapabilityRegistry()
        registry.register(JobKind.MINIFY, CommandBackend(["terser", "{input}", "-o", "{output}"]))

        backend = registry.resolve(JobKind.MINIFY)

        # Or use factory with defaults from config
        registry = CapabilityRegistry.create_default(config)

    Re-registration policy: a second register() for the same kind raises
    DuplicateCapability, unless allow_replace=True on the registry or
    replace=True on the call (last writer wins).
    """

    def __init__(self, allow_replace: bool = False) -> None:
        """Initialize an empty registry."""
        self._backends: dict[JobKind, Backend] = {}
        self.allow_replace = allow_replace

    def register(self, kind: "JobKind | str", backend: Backend, *, replace: Optional[bool] = None) -> None:
        """
        Register a back-end for a kind.

        Args:
            kind: Job kind the back-end executes
            backend: Back-end instance
            replace: Override the registry's replacement policy for this call

        Raises:
            DuplicateCapability: If the kind is registered and replacement is disallowed
        """
        kind = JobKind.parse(kind)
        allowed = self.allow_replace if replace is None else replace
        if kind in self._backends:
            if not allowed:
                raise DuplicateCapability(
                    f"A back-end is already registered for {kind.value}: {self._backends[kind]!r}",
                    kind=kind,
                )
            logger.info(f"Replacing back-end for {kind.value}: {self._backends[kind]!r} -> {backend!r}")
        self._backends[kind] = backend

    def resolve(self, kind: "JobKind | str") -> Backend:
        """
        Get the back-end for a kind.

        Raises:
            UnknownCapability: If the kind was never registered (or names no kind)
        """
        try:
            parsed = JobKind.parse(kind)
        except ValueError:
            raise UnknownCapability(f"Unknown job kind: {kind}") from None
        if parsed not in self._backends:
            registered = [k.value for k in self._backends]
            raise UnknownCapability(
                f"No back-end registered for {parsed.value}. Registered: {registered}",
                kind=parsed,
            )
        return self._backends[parsed]

    def has(self, kind: "JobKind | str") -> bool:
        try:
            return JobKind.parse(kind) in self._backends
        except ValueError:
            return False

    def kinds(self) -> list[JobKind]:
        """List registered kinds in registration order."""
        return list(self._backends.keys())

    def items(self) -> list[tuple[JobKind, Backend]]:
        return list(self._backends.items())

    def unregister(self, kind: "JobKind | str") -> None:
        """Remove a kind. Used at teardown and in tests."""
        self._backends.pop(JobKind.parse(kind), None)

    def clear(self) -> None:
        self._backends.clear()

    def __contains__(self, kind: object) -> bool:
        return isinstance(kind, (str, JobKind)) and self.has(kind)

    def __len__(self) -> int:
        return len(self._backends)

    @classmethod
    def create_default(cls, config: "NoxiumConfig | None" = None) -> "CapabilityRegistry":
        """
        Create a registry with the built-in back-ends.

        Command-line tools come from config.backends (see noxium.config);
        regex and bundle run in-process unless a command is configured
        for them.

        Args:
            config: NoxiumConfig, defaults when omitted

        Returns:
            Configured CapabilityRegistry
        """
        from noxium.backends.command import CommandBackend, WasmCommandBackend
        from noxium.backends.text import ConcatBundleBackend, RegexTransformBackend
        from noxium.config import NoxiumConfig

        config = config or NoxiumConfig()
        registry = cls(allow_replace=config.replace_capabilities)

        for kind in JobKind:
            command = config.backend_command(kind)
            if kind is JobKind.WASM_TRANSFORM:
                backend: Backend = WasmCommandBackend(command, formats=config.wasm_formats)
            elif command:
                backend = CommandBackend(command)
            elif kind is JobKind.REGEX_TRANSFORM:
                backend = RegexTransformBackend()
            elif kind is JobKind.BUNDLE:
                backend = ConcatBundleBackend(banner=config.bundle_banner)
            else:
                raise ValueError(f"No command configured for {kind.value}")
            registry.register(kind, backend)

        return registry

    @classmethod
    def create_noop(cls) -> "CapabilityRegistry":
        """
        Create a registry with passthrough back-ends for every kind.

        Useful for testing and dry-run mode.
        """
        registry = cls()
        backend = NoOpBackend()
        for kind in JobKind:
            registry.register(kind, backend)
        return registry
