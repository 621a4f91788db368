from hkdesk.services.result import Result


class TestResultSuccess:
    def test_success_creates_ok_result(self):
        result = Result.success("test value")
        assert result.ok is True
        assert result.value == "test value"
        assert result.error is None

    def test_success_with_different_types(self):
        assert Result.success(42).value == 42
        assert Result.success({"key": "value"}).value == {"key": "value"}


class TestResultFailure:
    def test_failure_creates_not_ok_result(self):
        result = Result.failure("Ticket not found", "not_found")
        assert result.ok is False
        assert result.error == "Ticket not found"
        assert result.error_code == "not_found"
        assert result.value is None

    def test_failure_default_code(self):
        assert Result.failure("Error message").error_code == "unknown"

    def test_from_exception_uses_message(self):
        result = Result.from_exception(RuntimeError("connection refused"), "db_error")
        assert result.ok is False
        assert result.error == "connection refused"
        assert result.error_code == "db_error"

    def test_from_exception_without_message_uses_class_name(self):
        result = Result.from_exception(TimeoutError())
        assert result.error == "TimeoutError"
