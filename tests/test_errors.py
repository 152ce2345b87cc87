"""Tests for the noxium error hierarchy."""

import pytest

from noxium.errors import (
    BackendError,
    BackendFailure,
    ConfigError,
    DuplicateCapability,
    DuplicateJob,
    JobCancelled,
    JobTimeout,
    NoxiumError,
    OrchestratorClosed,
    PipelineWiringError,
    UnknownCapability,
    ValidationError,
    ValidationReason,
)
from noxium.schemas import JobKind


class TestNoxiumError:
    """Tests for the base error."""

    def test_str_includes_stage_and_kind(self):
        """Stage index and kind prefix the message."""
        error = NoxiumError("boom", kind=JobKind.MINIFY, stage_index=1)
        assert str(error) == "stage 1: [minify] boom"

    def test_str_plain_message(self):
        """Without context the message is unchanged."""
        assert str(NoxiumError("boom")) == "boom"

    def test_at_stage_tags_and_returns_self(self):
        """at_stage() mutates and returns the same instance."""
        error = JobTimeout("late")
        assert error.at_stage(2) is error
        assert error.stage_index == 2

    def test_to_dict(self):
        """to_dict() carries code, message, kind and stage."""
        error = JobCancelled("stop", kind=JobKind.BUNDLE, stage_index=0)
        assert error.to_dict() == {
            "code": "cancelled",
            "message": "stop",
            "kind": "bundle",
            "stage_index": 0,
        }

    def test_codes_are_distinct(self):
        """Every error type has its own code."""
        classes = [
            ConfigError,
            UnknownCapability,
            DuplicateCapability,
            BackendFailure,
            JobTimeout,
            JobCancelled,
            PipelineWiringError,
            DuplicateJob,
            OrchestratorClosed,
        ]
        codes = {cls.code for cls in classes} | {ValidationError.code}
        assert len(codes) == len(classes) + 1

    def test_all_are_noxium_errors(self):
        """Callers can catch everything with NoxiumError."""
        assert issubclass(ValidationError, NoxiumError)
        assert issubclass(BackendFailure, NoxiumError)
        assert not issubclass(BackendError, NoxiumError)


class TestValidationError:
    """Tests for ValidationError."""

    def test_reason_coerced_from_string(self):
        error = ValidationError("missing_field", "no input", field="input_file")
        assert error.reason is ValidationReason.MISSING_FIELD

    def test_unknown_reason_rejected(self):
        with pytest.raises(ValueError):
            ValidationError("not_a_reason", "x")

    def test_to_dict_includes_reason_and_field(self):
        error = ValidationError(ValidationReason.MALFORMED_PATTERN, "bad", field="pattern")
        data = error.to_dict()
        assert data["reason"] == "malformed_pattern"
        assert data["field"] == "pattern"
        assert data["code"] == "validation_error"


class TestBackendFailure:
    """Tests for BackendFailure diagnostics."""

    def test_diagnostics_passed_through(self):
        diagnostics = {"stderr": "error TS2322"}
        error = BackendFailure("tsc failed", diagnostics=diagnostics, kind=JobKind.TYPESCRIPT_COMPILE)
        assert error.diagnostics is diagnostics
        assert error.to_dict()["diagnostics"] == diagnostics

    def test_backend_error_carries_diagnostics(self):
        error = BackendError("crashed", diagnostics=[1, 2])
        assert error.diagnostics == [1, 2]
        assert str(error) == "crashed"
