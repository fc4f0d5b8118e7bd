"""Tests for application exceptions."""

from chatsearch.exceptions import (
    BackfillError,
    ChatSearchError,
    ConfigurationError,
    DimensionMismatchError,
    ErrorCode,
    IndexUnavailableError,
    MessageNotFoundError,
    ProviderError,
    SearchError,
    StoreUnavailableError,
    ValidationError,
)


class TestErrorCode:
    """Tests for error codes."""

    def test_error_code_format(self) -> None:
        """Error codes follow MSG-XXXX format."""
        for code in ErrorCode:
            assert code.value.startswith("MSG-")
            assert len(code.value) == 8

    def test_error_code_uniqueness(self) -> None:
        """All error codes are unique."""
        codes = [code.value for code in ErrorCode]
        assert len(codes) == len(set(codes))


class TestChatSearchError:
    """Tests for base exception."""

    def test_basic_exception(self) -> None:
        """Base exception stores message and code."""
        error = ChatSearchError("Something went wrong")
        assert error.message == "Something went wrong"
        assert error.code == ErrorCode.INTERNAL_ERROR
        assert error.details == {}

    def test_to_dict(self) -> None:
        """Exception converts to API response dict."""
        error = ChatSearchError(
            "Something went wrong",
            code=ErrorCode.INTERNAL_ERROR,
            details={"trace_id": "abc123"},
        )

        assert error.to_dict() == {
            "error": {
                "code": "MSG-1000",
                "message": "Something went wrong",
                "details": {"trace_id": "abc123"},
            }
        }

    def test_str_representation(self) -> None:
        """Exception string is the message."""
        assert str(ChatSearchError("Test error")) == "Test error"


class TestSubclasses:
    """Default codes and inheritance of the specific errors."""

    def test_configuration_error(self) -> None:
        error = ConfigurationError("Missing env var")
        assert error.code == ErrorCode.CONFIGURATION_ERROR
        assert isinstance(error, ChatSearchError)

    def test_validation_error(self) -> None:
        assert ValidationError("bad").code == ErrorCode.VALIDATION_ERROR

    def test_message_not_found(self) -> None:
        assert MessageNotFoundError("gone").code == ErrorCode.MESSAGE_NOT_FOUND

    def test_store_unavailable(self) -> None:
        assert StoreUnavailableError("down").code == ErrorCode.STORE_UNAVAILABLE

    def test_provider_error_custom_code(self) -> None:
        """ProviderError can indicate a timeout."""
        error = ProviderError("slow", code=ErrorCode.EMBEDDING_TIMEOUT)
        assert error.code == ErrorCode.EMBEDDING_TIMEOUT

    def test_index_unavailable(self) -> None:
        assert IndexUnavailableError("down").code == ErrorCode.INDEX_UNAVAILABLE

    def test_search_error(self) -> None:
        assert SearchError("failed").code == ErrorCode.SEARCH_ERROR

    def test_backfill_error(self) -> None:
        assert BackfillError("failed").code == ErrorCode.BACKFILL_ERROR


class TestDimensionMismatchError:
    """Tests for dimension mismatch exception."""

    def test_records_expected_and_actual(self) -> None:
        """Both sizes are kept on the error and in details."""
        error = DimensionMismatchError(384, 1536, details={"collection": "messages"})

        assert error.expected == 384
        assert error.actual == 1536
        assert error.code == ErrorCode.EMBEDDING_DIMENSION_MISMATCH
        assert error.details == {"expected": 384, "actual": 1536, "collection": "messages"}
        assert "384" in error.message
