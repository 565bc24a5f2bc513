"""Tests for the exception hierarchy and error codes."""
import pytest

from noted.exceptions import (
    ConfigurationError,
    ErrorCode,
    InvalidParamError,
    NotedError,
    NoteNotFoundError,
    PayloadAllocationError,
    PayloadReleasedError,
    StorageError,
    error_from_code,
)


class TestErrorCodes:
    def test_values_are_stable(self):
        assert [c.value for c in ErrorCode] == [0, -1, -2, -3, -4]

    @pytest.mark.parametrize(
        "error, code",
        [
            (InvalidParamError("bad"), ErrorCode.INVALID_PARAM),
            (StorageError("io"), ErrorCode.DATABASE),
            (NoteNotFoundError(3), ErrorCode.NOT_FOUND),
            (PayloadAllocationError("oom"), ErrorCode.MEMORY),
            (PayloadReleasedError(1), ErrorCode.INVALID_PARAM),
            (ConfigurationError("cfg"), ErrorCode.INVALID_PARAM),
        ],
    )
    def test_each_error_carries_its_code(self, error, code):
        assert isinstance(error, NotedError)
        assert error.code is code


class TestSerialization:
    def test_to_dict(self):
        error = NoteNotFoundError(7)
        assert error.to_dict() == {
            "error": "NoteNotFoundError",
            "code": -3,
            "code_name": "NOT_FOUND",
            "message": "Note with ID 7 not found",
            "details": {"note_id": 7},
        }

    def test_str_includes_details(self):
        assert str(InvalidParamError("bad id", field="id", value=0)) == (
            "[INVALID_PARAM] bad id (field=id, value=0)"
        )

    def test_str_without_details(self):
        assert str(NotedError("plain")) == "[INVALID_PARAM] plain"

    def test_storage_error_hides_directories(self):
        error = StorageError("open failed", path="/home/someone/.noted/notes.db")
        assert error.details["path_hint"] == "notes.db"

    def test_long_values_are_truncated(self):
        error = InvalidParamError("bad", value="x" * 500)
        assert len(error.details["value"]) == 100


class TestErrorFromCode:
    def test_not_found_with_note_id(self):
        error = error_from_code(ErrorCode.NOT_FOUND, "gone", {"note_id": 4})
        assert isinstance(error, NoteNotFoundError)
        assert error.note_id == 4
        assert error.message == "gone"

    @pytest.mark.parametrize(
        "code, cls",
        [
            (ErrorCode.INVALID_PARAM, InvalidParamError),
            (ErrorCode.DATABASE, StorageError),
            (ErrorCode.MEMORY, PayloadAllocationError),
        ],
    )
    def test_known_codes(self, code, cls):
        error = error_from_code(code, "message", {"operation": "search"})
        assert type(error) is cls
        assert error.code is code
        assert error.details["operation"] == "search"

    def test_not_found_without_id_falls_back_to_base(self):
        error = error_from_code(ErrorCode.NOT_FOUND, "missing")
        assert type(error) is NotedError
        assert error.code is ErrorCode.NOT_FOUND
