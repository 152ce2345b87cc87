"""
Per-kind configuration variants.

One frozen dataclass per JobKind instead of one structure with many
optional fields, so every kind has an exhaustive shape check. Field names
follow snake_case; build_config() also accepts the camelCase names of the
JavaScript API (inputFile, outputFile, inputFiles).
"""

import os
from dataclasses import MISSING, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Union

from noxium.errors import ValidationError, ValidationReason

from .kinds import JobKind

PathLike = Union[str, "os.PathLike[str]"]

_CAMEL_FIELDS = {
    "inputFile": "input_file",
    "outputFile": "output_file",
    "inputFiles": "input_files",
}


def _coerce_path(kind: JobKind, name: str, value: Any) -> Path:
    if isinstance(value, Path):
        path = value
    elif isinstance(value, (str, os.PathLike)):
        path = Path(value)
    else:
        raise ValidationError(
            ValidationReason.INVALID_FIELD,
            f"'{name}' must be a path, got {type(value).__name__}",
            field=name,
            kind=kind,
        )
    if str(value) == "":
        raise ValidationError(
            ValidationReason.INVALID_FIELD,
            f"'{name}' must not be empty",
            field=name,
            kind=kind,
        )
    return path


def normalize_path(path: PathLike) -> Path:
    """Absolute, normalised form used to compare locators."""
    return Path(os.path.normpath(os.path.abspath(path)))


@dataclass(frozen=True)
class _SingleInputConfig:
    """Shared shape for kinds reading one file and writing one file."""
    input_file: Path
    output_file: Path

    kind = None  # overridden per subclass

    def __post_init__(self):
        object.__setattr__(self, "input_file", _coerce_path(self.kind, "input_file", self.input_file))
        object.__setattr__(self, "output_file", _coerce_path(self.kind, "output_file", self.output_file))

    @property
    def inputs(self) -> tuple[Path, ...]:
        return (self.input_file,)

    @property
    def output(self) -> Path:
        return self.output_file

    def to_dict(self) -> dict[str, Any]:
        return {"input_file": str(self.input_file), "output_file": str(self.output_file)}


@dataclass(frozen=True)
class TypeScriptCompileConfig(_SingleInputConfig):
    """TypeScript to JavaScript compilation."""
    kind = JobKind.TYPESCRIPT_COMPILE


@dataclass(frozen=True)
class MinifyConfig(_SingleInputConfig):
    """JavaScript minification."""
    kind = JobKind.MINIFY


@dataclass(frozen=True)
class WasmTransformConfig(_SingleInputConfig):
    """WebAssembly lowering. Input format is checked by the back-end."""
    kind = JobKind.WASM_TRANSFORM


@dataclass(frozen=True)
class RegexTransformConfig:
    """
    Pattern-based text rewrite.

    Attributes:
        pattern: Regular expression; every match is replaced
        input_file: Source file
        output_file: Destination file
        replacement: Replacement text (re.sub syntax), default removes matches
    """
    pattern: str
    input_file: Path
    output_file: Path
    replacement: str = ""

    kind = JobKind.REGEX_TRANSFORM

    def __post_init__(self):
        if not isinstance(self.pattern, str):
            raise ValidationError(
                ValidationReason.INVALID_FIELD,
                f"'pattern' must be a string, got {type(self.pattern).__name__}",
                field="pattern",
                kind=self.kind,
            )
        if not isinstance(self.replacement, str):
            raise ValidationError(
                ValidationReason.INVALID_FIELD,
                f"'replacement' must be a string, got {type(self.replacement).__name__}",
                field="replacement",
                kind=self.kind,
            )
        object.__setattr__(self, "input_file", _coerce_path(self.kind, "input_file", self.input_file))
        object.__setattr__(self, "output_file", _coerce_path(self.kind, "output_file", self.output_file))

    @property
    def inputs(self) -> tuple[Path, ...]:
        return (self.input_file,)

    @property
    def output(self) -> Path:
        return self.output_file

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern,
            "replacement": self.replacement,
            "input_file": str(self.input_file),
            "output_file": str(self.output_file),
        }


@dataclass(frozen=True)
class BundleConfig:
    """
    Multi-file bundling.

    Attributes:
        input_files: Ordered, non-empty, duplicate-free; order is precedence
        output_file: Destination file
    """
    input_files: tuple[Path, ...]
    output_file: Path

    kind = JobKind.BUNDLE

    def __post_init__(self):
        raw = self.input_files
        if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple)):
            raise ValidationError(
                ValidationReason.INVALID_FIELD,
                "'input_files' must be a list of paths",
                field="input_files",
                kind=self.kind,
            )
        if not raw:
            raise ValidationError(
                ValidationReason.INVALID_FIELD,
                "'input_files' must contain at least one file",
                field="input_files",
                kind=self.kind,
            )
        paths = tuple(_coerce_path(self.kind, "input_files", item) for item in raw)
        seen: set[Path] = set()
        for path in paths:
            key = normalize_path(path)
            if key in seen:
                raise ValidationError(
                    ValidationReason.DUPLICATE_INPUT,
                    f"Duplicate bundle entry: {path}",
                    field="input_files",
                    kind=self.kind,
                )
            seen.add(key)
        object.__setattr__(self, "input_files", paths)
        object.__setattr__(self, "output_file", _coerce_path(self.kind, "output_file", self.output_file))

    @property
    def inputs(self) -> tuple[Path, ...]:
        return self.input_files

    @property
    def output(self) -> Path:
        return self.output_file

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_files": [str(p) for p in self.input_files],
            "output_file": str(self.output_file),
        }


JobConfig = Union[
    TypeScriptCompileConfig,
    RegexTransformConfig,
    MinifyConfig,
    BundleConfig,
    WasmTransformConfig,
]

CONFIG_TYPES: dict[JobKind, type] = {
    JobKind.TYPESCRIPT_COMPILE: TypeScriptCompileConfig,
    JobKind.REGEX_TRANSFORM: RegexTransformConfig,
    JobKind.MINIFY: MinifyConfig,
    JobKind.BUNDLE: BundleConfig,
    JobKind.WASM_TRANSFORM: WasmTransformConfig,
}


def build_config(kind: "JobKind | str", data: "Mapping[str, Any] | JobConfig") -> JobConfig:
    """
    Build the typed config for a kind from a mapping.

    Args:
        kind: The job kind
        data: Field mapping (snake_case or camelCase keys), or an already
              built config of the matching type

    Returns:
        The frozen config dataclass for the kind

    Raises:
        ValidationError: Missing, unknown or malformed fields
        ValueError: If kind is not a known JobKind
    """
    kind = JobKind.parse(kind)
    config_type = CONFIG_TYPES[kind]

    if isinstance(data, config_type):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError(
            ValidationReason.INVALID_FIELD,
            f"Config for {kind.value} must be a mapping, got {type(data).__name__}",
            kind=kind,
        )

    normalized = {_CAMEL_FIELDS.get(key, key): value for key, value in data.items()}
    declared = [f for f in fields(config_type)]
    allowed = {f.name for f in declared}

    unknown = sorted(set(normalized) - allowed)
    if unknown:
        raise ValidationError(
            ValidationReason.INVALID_FIELD,
            f"Unknown field(s) for {kind.value}: {', '.join(unknown)}",
            field=unknown[0],
            kind=kind,
        )

    for f in declared:
        required = f.default is MISSING and f.default_factory is MISSING
        if required and normalized.get(f.name) is None:
            raise ValidationError(
                ValidationReason.MISSING_FIELD,
                f"Missing required field '{f.name}' for {kind.value}",
                field=f.name,
                kind=kind,
            )

    return config_type(**normalized)
