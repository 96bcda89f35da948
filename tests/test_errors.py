import pytest

from clbench.errors import (
    ApiError,
    BenchmarkError,
    BuildError,
    EntryPointNotFound,
    error_code,
    safe_call,
)


def test_safe_call_returns_the_result(fake_cl):
    assert safe_call(lambda x, y=0: x + y, 1, y=2) == 3


def test_safe_call_records_the_caller(fake_cl):
    def failing():
        raise fake_cl.Error("clFinish failed: INVALID_COMMAND_QUEUE", code=-36, routine="clFinish")

    with pytest.raises(ApiError) as excinfo:
        safe_call(failing)

    error = excinfo.value
    assert error.code == -36
    assert error.routine == "clFinish"
    assert error.filename == __file__
    assert "clFinish" in str(error)
    assert isinstance(error.__cause__, fake_cl.Error)


def test_safe_call_line_number(fake_cl):
    def failing():
        raise fake_cl.Error("failed", code=-5)

    import inspect

    expected = inspect.currentframe().f_lineno + 3

    with pytest.raises(ApiError) as excinfo:
        safe_call(failing)

    assert excinfo.value.lineno == expected


def test_other_exceptions_pass_through(fake_cl):
    def failing():
        raise KeyError("x")

    with pytest.raises(KeyError):
        safe_call(failing)


def test_error_code():
    assert error_code(ApiError(-5, "f.py", 1)) == -5
    assert error_code(RuntimeError()) is None


def test_error_hierarchy():
    assert issubclass(BuildError, BenchmarkError)
    assert BuildError(-11, "log").log == "log"
    assert "aplusb, mul" in str(EntryPointNotFound("add", ["aplusb", "mul"]))
