import asyncio
from pathlib import Path

import pytest

from noxium.backends import Backend, CapabilityRegistry
from noxium.config import NoxiumConfig
from noxium.errors import BackendError
from noxium.schemas import JobKind


class RecordingBackend(Backend):
    """Test back-end: prefixes the concatenated inputs and records every call."""

    def __init__(self, prefix: str = "", fail: bool = False, delay: float = 0.0, name: str = "recording"):
        self.prefix = prefix
        self.fail = fail
        self.delay = delay
        self.name = name
        self.calls = []

    async def execute(self, config, output_path: Path):
        self.calls.append((config, output_path))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise BackendError(f"{self.name} failed", diagnostics={"errors": ["E1"]})
        text = "".join(Path(p).read_text() for p in config.inputs)
        output_path.write_text(self.prefix + text)
        return {"backend": self.name}


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.noxium."""
    home = tmp_path / "noxium_home"
    monkeypatch.setenv("NOXIUM_HOME", str(home))
    monkeypatch.delenv("NOXIUM_CONFIG", raising=False)
    return home


@pytest.fixture
def test_config():
    return NoxiumConfig(
        {
            "orchestrator": {
                "default_timeout_s": 5,
                "cancel_grace_s": 0.2,
                "shutdown_grace_s": 1,
            },
            "logging": {"console": False},
        }
    )


@pytest.fixture
def recorder():
    return RecordingBackend()


@pytest.fixture
def registry(recorder):
    """Registry with the recording back-end for every kind."""
    registry = CapabilityRegistry()
    for kind in JobKind:
        registry.register(kind, recorder)
    return registry


@pytest.fixture
def workdir(tmp_path):
    """Directory with a few source files."""
    root = tmp_path / "work"
    root.mkdir()
    (root / "app.ts").write_text("const x: number = 1;\n")
    (root / "app.js").write_text("var x = 1; // one\nvar y = 2; // two\n")
    (root / "a.js").write_text("var a = 1;")
    (root / "b.js").write_text("var b = 2;\n")
    return root
