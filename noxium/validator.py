"""
Validator - reject malformed JobDescriptors before any back-end runs.

Checks run in a fixed order and stop at the first failure:
1. kind is registered                      -> UnknownCapability
2. config shape matches the kind           -> ValidationError(missing_field / invalid_field)
3. every input is an existing readable file -> ValidationError(unreadable_input)
4. output directory accepts a new entry    -> ValidationError(unwritable_output)
5. kind-specific syntax (regex compiles, back-end check()) -> ValidationError(...)

Validation only probes the filesystem (stat/access/reading a few magic
bytes); it never creates, modifies or deletes anything.
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from noxium.backends.base import Backend
from noxium.backends.registry import CapabilityRegistry
from noxium.errors import BackendFailure, NoxiumError, ValidationError, ValidationReason
from noxium.schemas import CONFIG_TYPES, JobDescriptor, JobKind, RegexTransformConfig, normalize_path


@dataclass(frozen=True)
class ValidDescriptor:
    """A descriptor that passed validation, bound to the back-end that will run it."""
    descriptor: JobDescriptor
    backend: Backend

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def kind(self) -> JobKind:
        return self.descriptor.kind


def _check_shape(descriptor: JobDescriptor) -> None:
    expected = CONFIG_TYPES[descriptor.kind]
    if not isinstance(descriptor.config, expected):
        raise ValidationError(
            ValidationReason.INVALID_FIELD,
            f"Config for {descriptor.kind.value} must be {expected.__name__}, "
            f"got {type(descriptor.config).__name__}",
            kind=descriptor.kind,
        )


def _check_inputs(descriptor: JobDescriptor, pending: set[Path]) -> None:
    field = "input_files" if descriptor.kind.is_multi_input else "input_file"
    for path in descriptor.config.inputs:
        if normalize_path(path) in pending:
            # produced by an upstream pipeline stage
            continue
        if not path.exists():
            raise ValidationError(
                ValidationReason.UNREADABLE_INPUT,
                f"Input does not exist: {path}",
                field=field,
                kind=descriptor.kind,
            )
        if not path.is_file():
            raise ValidationError(
                ValidationReason.UNREADABLE_INPUT,
                f"Input is not a file: {path}",
                field=field,
                kind=descriptor.kind,
            )
        if not os.access(path, os.R_OK):
            raise ValidationError(
                ValidationReason.UNREADABLE_INPUT,
                f"Input is not readable: {path}",
                field=field,
                kind=descriptor.kind,
            )


def _check_output(descriptor: JobDescriptor) -> None:
    output = descriptor.config.output
    parent = normalize_path(output).parent
    if output.exists() and output.is_dir():
        raise ValidationError(
            ValidationReason.UNWRITABLE_OUTPUT,
            f"Output is a directory: {output}",
            field="output_file",
            kind=descriptor.kind,
        )
    if not parent.is_dir():
        raise ValidationError(
            ValidationReason.UNWRITABLE_OUTPUT,
            f"Output directory does not exist: {parent}",
            field="output_file",
            kind=descriptor.kind,
        )
    if not os.access(parent, os.W_OK | os.X_OK):
        raise ValidationError(
            ValidationReason.UNWRITABLE_OUTPUT,
            f"Output directory is not writable: {parent}",
            field="output_file",
            kind=descriptor.kind,
        )


def _check_pattern(config: RegexTransformConfig) -> None:
    if not config.pattern:
        raise ValidationError(
            ValidationReason.MALFORMED_PATTERN,
            "Pattern must not be empty",
            field="pattern",
            kind=config.kind,
        )
    try:
        re.compile(config.pattern)
    except re.error as e:
        raise ValidationError(
            ValidationReason.MALFORMED_PATTERN,
            f"Pattern does not compile: {e}",
            field="pattern",
            kind=config.kind,
        ) from e


def validate(
    descriptor: JobDescriptor,
    registry: CapabilityRegistry,
    *,
    pending_inputs: Iterable[Path] = (),
) -> ValidDescriptor:
    """
    Validate a descriptor against the registry and the filesystem.

    Args:
        descriptor: The descriptor to check
        registry: Registry the kind must be registered in
        pending_inputs: Paths that do not exist yet but will be produced
                        by earlier pipeline stages

    Returns:
        ValidDescriptor bound to the resolved back-end

    Raises:
        UnknownCapability: If the kind is not registered
        ValidationError: For the first failed check
    """
    backend = registry.resolve(descriptor.kind)
    _check_shape(descriptor)
    _check_inputs(descriptor, {normalize_path(p) for p in pending_inputs})
    _check_output(descriptor)
    if isinstance(descriptor.config, RegexTransformConfig):
        _check_pattern(descriptor.config)
    try:
        backend.check(descriptor.config)
    except NoxiumError:
        raise
    except Exception as e:
        raise BackendFailure(
            f"{backend.name} check failed: {e}",
            diagnostics={"error_type": type(e).__name__},
            kind=descriptor.kind,
        ) from e
    return ValidDescriptor(descriptor=descriptor, backend=backend)
