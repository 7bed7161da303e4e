"""
Tests for the exception hierarchy.
"""

import pytest

from mdloader.exceptions import (
    AnnotationError,
    ConfigurationError,
    LoadAborted,
    MdLoaderError,
    MdRunMismatchError,
    ProjectNotFoundError,
    RetryError,
    StoreError,
    TrajectoryDecodeError,
    TransportError,
    UploadError,
    ValidationError,
)


class TestHierarchy:
    """Verify all exceptions inherit from MdLoaderError."""

    @pytest.mark.parametrize(
        "exc_class",
        [
            ConfigurationError,
            ValidationError,
            ProjectNotFoundError,
            MdRunMismatchError,
            LoadAborted,
            TransportError,
            StoreError,
            UploadError,
            TrajectoryDecodeError,
            AnnotationError,
            RetryError,
        ],
    )
    def test_inherits_from_mdloader_error(self, exc_class):
        assert issubclass(exc_class, MdLoaderError)

    def test_not_found_is_validation(self):
        assert issubclass(ProjectNotFoundError, ValidationError)
        assert issubclass(MdRunMismatchError, ValidationError)

    def test_transport_errors(self):
        for exc_class in (StoreError, UploadError, TrajectoryDecodeError):
            assert issubclass(exc_class, TransportError)

    def test_cancellation_is_not_validation(self):
        assert not issubclass(LoadAborted, ValidationError)
        assert not issubclass(LoadAborted, TransportError)


class TestExceptionMessages:
    """Test exception constructors and details."""

    def test_base_error(self):
        e = MdLoaderError("boom", details={"key": "val"})
        assert str(e) == "boom"
        assert e.message == "boom"
        assert e.details == {"key": "val"}

    def test_details_default_empty(self):
        assert MdLoaderError("boom").details == {}

    def test_project_not_found(self):
        e = ProjectNotFoundError("MCNS00042")
        assert "MCNS00042" in str(e)
        assert e.reference == "MCNS00042"
        assert e.details["reference"] == "MCNS00042"

    def test_load_aborted(self):
        e = LoadAborted("abc", "references")
        assert e.project_id == "abc"
        assert e.checkpoint == "references"
        assert "before references" in str(e)

    def test_load_aborted_without_checkpoint(self):
        assert str(LoadAborted("abc")) == "Load of project abc aborted"

    def test_upload_error_cause(self):
        cause = OSError("disk gone")
        e = UploadError("structure.pdb", "read failed", cause=cause)
        assert "structure.pdb" in str(e)
        assert e.name == "structure.pdb"
        assert e.__cause__ is cause

    def test_trajectory_decode_error(self):
        e = TrajectoryDecodeError("traj.xtc", 1, "x" * 5000)
        assert e.returncode == 1
        assert e.path == "traj.xtc"
        assert len(e.details["stderr"]) == 2000

    def test_annotation_error(self):
        e = AnnotationError("A, B", "timeout")
        assert e.chain == "A, B"
        assert e.reason == "timeout"
        assert "A, B" in str(e)

    def test_catchable_with_base(self):
        """All exceptions can be caught with MdLoaderError."""
        with pytest.raises(MdLoaderError):
            raise ConfigurationError("bad config")

        with pytest.raises(MdLoaderError):
            raise LoadAborted("abc")
