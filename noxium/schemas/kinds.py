"""
JobKind enum defining the closed set of transformations noxium dispatches.

Each kind maps to exactly one configuration shape (see configs.py) and to
one registered back-end (see noxium.backends.registry). Adding a kind means
adding a member here, a config variant, and a registry entry.
"""

from enum import Enum


# Names used by the JavaScript API (noxium.typescript(), ...)
_API_ALIASES = {
    "typescript": "typescript_compile",
    "typescriptcompile": "typescript_compile",
    "regex": "regex_transform",
    "regextransform": "regex_transform",
    "minify": "minify",
    "bundle": "bundle",
    "wasm": "wasm_transform",
    "wasmtransform": "wasm_transform",
}


class JobKind(str, Enum):
    """
    Enumeration of all transformation kinds.

    Values are snake_case identifiers used in config files, logs and
    results.
    """
    TYPESCRIPT_COMPILE = "typescript_compile"
    REGEX_TRANSFORM = "regex_transform"
    MINIFY = "minify"
    BUNDLE = "bundle"
    WASM_TRANSFORM = "wasm_transform"

    @property
    def is_multi_input(self) -> bool:
        """Bundle is the only kind that takes several inputs."""
        return self is JobKind.BUNDLE

    @classmethod
    def parse(cls, value: "str | JobKind") -> "JobKind":
        """
        Parse a JobKind from its value, member name or API alias.

        Accepts "minify", "MINIFY", "wasmTransform", "wasm-transform", ...

        Raises:
            ValueError: If the value names no known kind
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for kind in cls:
            if text == kind.value or text.upper() == kind.name:
                return kind
        key = text.replace("-", "").replace("_", "").lower()
        if key in _API_ALIASES:
            return cls(_API_ALIASES[key])
        raise ValueError(f"Unknown job kind: {value}")
