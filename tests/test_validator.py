"""Tests for descriptor validation."""

import pytest

from noxium.backends import Backend, CapabilityRegistry, WasmCommandBackend
from noxium.errors import BackendFailure, UnknownCapability, ValidationError, ValidationReason
from noxium.schemas import JobDescriptor, JobKind
from noxium.validator import ValidDescriptor, validate


def _regex(workdir, **overrides):
    config = {
        "pattern": r"//.*",
        "input_file": str(workdir / "app.js"),
        "output_file": str(workdir / "app.clean.js"),
    }
    config.update(overrides)
    return JobDescriptor.create("regex", config)


class TestValidate:
    """Tests for validate() check order and reasons."""

    def test_valid_descriptor_bound_to_backend(self, workdir, registry, recorder):
        descriptor = _regex(workdir)
        valid = validate(descriptor, registry)
        assert isinstance(valid, ValidDescriptor)
        assert valid.backend is recorder
        assert valid.id == descriptor.id
        assert valid.kind is JobKind.REGEX_TRANSFORM

    def test_unknown_capability_checked_first(self, workdir):
        """An unregistered kind is reported even when the input is also missing."""
        descriptor = _regex(workdir, input_file=str(workdir / "missing.js"))
        with pytest.raises(UnknownCapability):
            validate(descriptor, CapabilityRegistry())

    def test_missing_input(self, workdir, registry):
        with pytest.raises(ValidationError) as exc_info:
            validate(_regex(workdir, input_file=str(workdir / "missing.js")), registry)
        assert exc_info.value.reason is ValidationReason.UNREADABLE_INPUT
        assert exc_info.value.field == "input_file"

    def test_input_is_directory(self, workdir, registry):
        with pytest.raises(ValidationError) as exc_info:
            validate(_regex(workdir, input_file=str(workdir)), registry)
        assert exc_info.value.reason is ValidationReason.UNREADABLE_INPUT

    def test_missing_bundle_entry(self, workdir, registry):
        descriptor = JobDescriptor.create(
            "bundle",
            {"input_files": [str(workdir / "a.js"), str(workdir / "nope.js")], "output_file": str(workdir / "out.js")},
        )
        with pytest.raises(ValidationError) as exc_info:
            validate(descriptor, registry)
        assert exc_info.value.field == "input_files"

    def test_output_directory_missing(self, workdir, registry):
        with pytest.raises(ValidationError) as exc_info:
            validate(_regex(workdir, output_file=str(workdir / "no" / "such" / "out.js")), registry)
        assert exc_info.value.reason is ValidationReason.UNWRITABLE_OUTPUT

    def test_output_is_directory(self, workdir, registry):
        (workdir / "dist").mkdir()
        with pytest.raises(ValidationError) as exc_info:
            validate(_regex(workdir, output_file=str(workdir / "dist")), registry)
        assert exc_info.value.reason is ValidationReason.UNWRITABLE_OUTPUT

    @pytest.mark.parametrize("pattern", ["(unclosed", "", "[a-"])
    def test_malformed_pattern(self, workdir, registry, pattern):
        with pytest.raises(ValidationError) as exc_info:
            validate(_regex(workdir, pattern=pattern), registry)
        assert exc_info.value.reason is ValidationReason.MALFORMED_PATTERN
        assert exc_info.value.field == "pattern"

    def test_pending_inputs_accepted(self, workdir, registry):
        """Inputs that an upstream stage will produce need not exist yet."""
        upcoming = workdir / "build" / "app.js"
        descriptor = JobDescriptor.create(
            "minify", {"input_file": str(upcoming), "output_file": str(workdir / "app.min.js")}
        )
        with pytest.raises(ValidationError):
            validate(descriptor, registry)
        assert validate(descriptor, registry, pending_inputs=[upcoming]).descriptor is descriptor

    def test_validation_has_no_side_effects(self, workdir, registry):
        before = sorted(p.name for p in workdir.iterdir())
        validate(_regex(workdir), registry)
        with pytest.raises(ValidationError):
            validate(_regex(workdir, pattern="("), registry)
        assert sorted(p.name for p in workdir.iterdir()) == before


class TestBackendCheck:
    """Tests for the back-end check() hook."""

    @pytest.fixture
    def wasm_registry(self):
        registry = CapabilityRegistry()
        registry.register(JobKind.WASM_TRANSFORM, WasmCommandBackend(["wat2wasm", "{input}", "-o", "{output}"]))
        return registry

    def _wasm(self, source, tmp_path):
        return JobDescriptor.create(
            "wasm", {"input_file": str(source), "output_file": str(tmp_path / "out.wasm")}
        )

    def test_text_format_accepted(self, tmp_path, wasm_registry):
        source = tmp_path / "module.wat"
        source.write_text("(module)")
        assert validate(self._wasm(source, tmp_path), wasm_registry)

    def test_unrecognized_suffix(self, tmp_path, wasm_registry):
        source = tmp_path / "module.txt"
        source.write_text("(module)")
        with pytest.raises(ValidationError) as exc_info:
            validate(self._wasm(source, tmp_path), wasm_registry)
        assert exc_info.value.reason is ValidationReason.UNRECOGNIZED_FORMAT

    def test_binary_without_magic(self, tmp_path, wasm_registry):
        source = tmp_path / "module.wasm"
        source.write_bytes(b"not wasm")
        with pytest.raises(ValidationError) as exc_info:
            validate(self._wasm(source, tmp_path), wasm_registry)
        assert exc_info.value.reason is ValidationReason.UNRECOGNIZED_FORMAT

    def test_binary_with_magic(self, tmp_path, wasm_registry):
        source = tmp_path / "module.wasm"
        source.write_bytes(b"\x00asm\x01\x00\x00\x00")
        assert validate(self._wasm(source, tmp_path), wasm_registry)

    def test_check_crash_becomes_backend_failure(self, workdir):
        class BrokenCheck(Backend):
            async def execute(self, config, output_path):
                return None

            def check(self, config):
                raise RuntimeError("check exploded")

        registry = CapabilityRegistry()
        registry.register(JobKind.REGEX_TRANSFORM, BrokenCheck())
        with pytest.raises(BackendFailure, match="check exploded"):
            validate(_regex(workdir), registry)
