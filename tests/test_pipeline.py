"""Tests for pipeline wiring, composition and definition loading."""

import asyncio
import json

import pytest
import yaml

from conftest import RecordingBackend
from noxium.backends import CapabilityRegistry
from noxium.errors import (
    BackendFailure,
    JobCancelled,
    PipelineWiringError,
    UnknownCapability,
    ValidationError,
    ValidationReason,
)
from noxium.executor import Executor, RunHandle
from noxium.pipeline import PipelineComposer, check_wiring, load_pipeline
from noxium.schemas import JobDescriptor, JobKind, JobStatus


def _stage(kind, source, output, **extra):
    return JobDescriptor.create(kind, {"input_file": str(source), "output_file": str(output), **extra})


@pytest.fixture
def backends():
    return {
        JobKind.TYPESCRIPT_COMPILE: RecordingBackend(prefix="// compiled\n", name="tsc"),
        JobKind.MINIFY: RecordingBackend(prefix="/*min*/", name="terser"),
        JobKind.REGEX_TRANSFORM: RecordingBackend(prefix="", name="regex"),
        JobKind.BUNDLE: RecordingBackend(prefix="", name="bundle"),
    }


@pytest.fixture
def composer(backends):
    registry = CapabilityRegistry()
    for kind, backend in backends.items():
        registry.register(kind, backend)
    return PipelineComposer(registry, Executor(default_timeout_s=5, cancel_grace_s=0.2))


class TestWiring:
    """Tests for check_wiring()."""

    def test_chained_stages(self, workdir):
        check_wiring([
            _stage("typescript", workdir / "app.ts", workdir / "app.js"),
            _stage("minify", workdir / "app.js", workdir / "app.min.js"),
        ])

    def test_mismatch_reports_stage(self, workdir):
        with pytest.raises(PipelineWiringError) as exc_info:
            check_wiring([
                _stage("typescript", workdir / "app.ts", workdir / "out.js"),
                _stage("minify", workdir / "other.js", workdir / "app.min.js"),
            ])
        assert exc_info.value.stage_index == 1
        assert exc_info.value.kind is JobKind.MINIFY

    def test_empty_pipeline(self):
        with pytest.raises(PipelineWiringError):
            check_wiring([])

    def test_relative_and_absolute_paths_match(self, workdir, monkeypatch):
        monkeypatch.chdir(workdir)
        check_wiring([
            _stage("typescript", "app.ts", "build/../app.out.js"),
            _stage("minify", workdir / "app.out.js", "app.min.js"),
        ])

    def test_bundle_accepts_upstream_among_inputs(self, workdir):
        bundle = JobDescriptor.create(
            "bundle",
            {"input_files": [str(workdir / "a.js"), str(workdir / "app.out.js")], "output_file": str(workdir / "b.out.js")},
        )
        check_wiring([_stage("typescript", workdir / "app.ts", workdir / "app.out.js"), bundle])


class TestRunPipeline:
    """Tests for PipelineComposer.run_pipeline()."""

    @pytest.mark.asyncio
    async def test_two_stage_success(self, workdir, composer):
        """TypeScript then minify: the final output carries both transformations."""
        result = await composer.run_pipeline([
            _stage("typescript", workdir / "app.ts", workdir / "app.out.js"),
            _stage("minify", workdir / "app.out.js", workdir / "app.min.js"),
        ])

        assert result.success
        assert result.status is JobStatus.COMPLETED
        assert result.output_file == workdir / "app.min.js"
        assert result.output_file.read_text() == "/*min*/// compiled\nconst x: number = 1;\n"
        assert [s.stage_index for s in result.stages] == [0, 1]
        assert (workdir / "app.out.js").exists()

    @pytest.mark.asyncio
    async def test_failure_at_stage_one_stops_pipeline(self, workdir, composer, backends):
        """A -> B -> C with stage 1 failing: C is never created, B stays."""
        backends[JobKind.MINIFY].fail = True
        result = await composer.run_pipeline([
            _stage("typescript", workdir / "app.ts", workdir / "B.js"),
            _stage("minify", workdir / "B.js", workdir / "C.js"),
            _stage("regex", workdir / "C.js", workdir / "D.js", pattern="x"),
        ])

        assert not result.success
        assert result.failed_stage == 1
        assert isinstance(result.error, BackendFailure)
        assert result.error.kind is JobKind.MINIFY
        assert result.error.stage_index == 1
        assert len(result.stages) == 2
        assert (workdir / "B.js").exists()
        assert not (workdir / "C.js").exists()
        assert not (workdir / "D.js").exists()
        assert backends[JobKind.REGEX_TRANSFORM].calls == []

    @pytest.mark.asyncio
    async def test_cleanup_on_failure(self, workdir, composer, backends):
        backends[JobKind.MINIFY].fail = True
        result = await composer.run_pipeline(
            [
                _stage("typescript", workdir / "app.ts", workdir / "B.js"),
                _stage("minify", workdir / "B.js", workdir / "C.js"),
            ],
            cleanup_on_failure=True,
        )
        assert result.cleaned_up == [workdir / "B.js"]
        assert not (workdir / "B.js").exists()

    @pytest.mark.asyncio
    async def test_wiring_error_before_any_backend(self, workdir, composer, backends):
        result = await composer.run_pipeline([
            _stage("typescript", workdir / "app.ts", workdir / "B.js"),
            _stage("minify", workdir / "elsewhere.js", workdir / "C.js"),
        ])
        assert isinstance(result.error, PipelineWiringError)
        assert result.failed_stage == 1
        assert result.stages == []
        assert all(b.calls == [] for b in backends.values())

    @pytest.mark.asyncio
    async def test_every_stage_validated_upfront(self, workdir, composer, backends):
        """A malformed later stage fails the pipeline before stage 0 runs."""
        result = await composer.run_pipeline([
            _stage("typescript", workdir / "app.ts", workdir / "B.js"),
            _stage("regex", workdir / "B.js", workdir / "C.js", pattern="(unclosed"),
        ])
        assert isinstance(result.error, ValidationError)
        assert result.error.reason is ValidationReason.MALFORMED_PATTERN
        assert result.failed_stage == 1
        assert backends[JobKind.TYPESCRIPT_COMPILE].calls == []
        assert not (workdir / "B.js").exists()

    @pytest.mark.asyncio
    async def test_unregistered_stage_kind(self, workdir, composer):
        result = await composer.run_pipeline([
            _stage("typescript", workdir / "app.ts", workdir / "B.wat"),
            _stage("wasm", workdir / "B.wat", workdir / "C.wasm"),
        ])
        assert isinstance(result.error, UnknownCapability)
        assert result.failed_stage == 1

    @pytest.mark.asyncio
    async def test_cancel_stops_later_stages(self, workdir, composer, backends):
        backends[JobKind.TYPESCRIPT_COMPILE].delay = 5
        handle = RunHandle("p1")
        task = asyncio.create_task(
            composer.run_pipeline(
                [
                    _stage("typescript", workdir / "app.ts", workdir / "B.js"),
                    _stage("minify", workdir / "B.js", workdir / "C.js"),
                ],
                handle=handle,
            )
        )
        await asyncio.sleep(0.05)
        assert handle.cancel()
        result = await task

        assert result.status is JobStatus.CANCELLED
        assert isinstance(result.error, JobCancelled)
        assert result.failed_stage == 0
        assert handle.status is JobStatus.CANCELLED
        assert backends[JobKind.MINIFY].calls == []
        assert not (workdir / "B.js").exists()

    @pytest.mark.asyncio
    async def test_per_stage_timeout(self, workdir, composer, backends):
        backends[JobKind.MINIFY].delay = 5
        result = await composer.run_pipeline([
            _stage("typescript", workdir / "app.ts", workdir / "B.js"),
            JobDescriptor.create(
                "minify",
                {"input_file": str(workdir / "B.js"), "output_file": str(workdir / "C.js")},
                timeout_s=0.1,
            ),
        ])
        assert result.failed_stage == 1
        assert result.error.code == "timeout"


class TestLoadPipeline:
    """Tests for load_pipeline()."""

    def test_yaml_definition(self, tmp_path):
        path = tmp_path / "build.yaml"
        path.write_text(yaml.safe_dump({
            "pipeline_id": "build.app",
            "cleanup_on_failure": True,
            "stages": [
                {"kind": "typescript", "config": {"inputFile": "src/app.ts", "outputFile": "build/app.js"}},
                {"kind": "minify", "config": {"input_file": "build/app.js", "output_file": "/abs/app.min.js"}, "timeout_s": 60},
            ],
        }))

        definition = load_pipeline(path)

        assert definition.pipeline_id == "build.app"
        assert definition.cleanup_on_failure is True
        first, second = definition.stages
        assert first.kind is JobKind.TYPESCRIPT_COMPILE
        assert first.config.input_file == tmp_path.resolve() / "src" / "app.ts"
        assert second.config.output_file.as_posix() == "/abs/app.min.js"
        assert second.timeout_s == 60

    def test_json_definition_and_default_id(self, tmp_path):
        path = tmp_path / "bundle.json"
        path.write_text(json.dumps({
            "stages": [{"kind": "bundle", "config": {"input_files": ["a.js", "b.js"], "output_file": "out.js"}}],
        }))
        definition = load_pipeline(path)
        assert definition.pipeline_id == "bundle"
        assert definition.stages[0].config.input_files == (tmp_path.resolve() / "a.js", tmp_path.resolve() / "b.js")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_pipeline(tmp_path / "nope.yaml")

    def test_no_stages(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("pipeline_id: x\nstages: []\n")
        with pytest.raises(ValueError, match="stages"):
            load_pipeline(path)

    def test_invalid_yaml_syntax(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("stages: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid pipeline definition syntax"):
            load_pipeline(path)

    def test_invalid_json_syntax(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text('{"stages": [')
        with pytest.raises(ValueError, match="Invalid pipeline definition syntax"):
            load_pipeline(path)

    def test_unknown_kind(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("stages:\n  - kind: rustc\n    config: {}\n")
        with pytest.raises(ValueError, match="Unknown job kind"):
            load_pipeline(path)
