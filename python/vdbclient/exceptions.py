"""
Error taxonomy for vdbclient

Every failure surfaced by the client is a ``VectorDBError``. Each subclass
maps onto one ``StatusCode`` category so callers can branch on the
category (``err.status.code``) or on the class, whichever reads better.
"""

from typing import Dict, Optional, Type

from vdbclient.protocol import ErrorCode, Status, StatusCode


class VectorDBError(Exception):
    """Base class for all client errors"""

    status_code: StatusCode = StatusCode.TRANSIENT

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def status(self) -> Status:
        return Status(code=self.status_code, message=self.message)

    @property
    def retryable(self) -> bool:
        return self.status_code is StatusCode.TRANSIENT

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"<{type(self).__name__}: (code={self.code}, message={self.message})>"


class ConnectionError(VectorDBError):  # noqa: A001
    """Server unreachable, incompatible, or client not connected"""
    status_code = StatusCode.TRANSIENT


class AuthenticationError(VectorDBError):
    """Credentials rejected by the server"""
    status_code = StatusCode.UNAUTHENTICATED


class TransientError(VectorDBError):
    """Server-side failure that may succeed if repeated"""
    status_code = StatusCode.TRANSIENT


class RequestTimeoutError(TransientError):
    """No answer within the configured timeout"""


class ParamError(VectorDBError):
    """Invalid argument detected before the request was sent"""
    status_code = StatusCode.VALIDATION


class SchemaError(ParamError):
    """Invalid collection schema"""


class SchemaMismatchError(ParamError):
    """Row payload disagrees with the collection schema"""


class DimensionMismatchError(SchemaMismatchError):
    """Vector length disagrees with the field's declared dimension"""


class InvalidFilterError(ParamError):
    """Malformed boolean filter expression"""


class UnsupportedIndexTypeError(ParamError):
    """Index family does not fit the field's data type"""


class NotFoundError(VectorDBError):
    """Collection or index does not exist"""
    status_code = StatusCode.NOT_FOUND


class FieldNotFoundError(NotFoundError):
    """Field does not exist in the collection schema"""


class AlreadyExistsError(VectorDBError):
    """Name already taken"""
    status_code = StatusCode.ALREADY_EXISTS


class NotLoadedError(VectorDBError):
    """Query or search against a collection that is not loaded"""
    status_code = StatusCode.FAILED_PRECONDITION


_ERRORS_BY_CODE: Dict[int, Type[VectorDBError]] = {
    ErrorCode.UNEXPECTED: TransientError,
    ErrorCode.SERVICE_UNAVAILABLE: TransientError,
    ErrorCode.COLLECTION_NOT_FOUND: NotFoundError,
    ErrorCode.COLLECTION_NOT_LOADED: NotLoadedError,
    ErrorCode.COLLECTION_ALREADY_EXISTS: AlreadyExistsError,
    ErrorCode.INDEX_NOT_FOUND: NotFoundError,
    ErrorCode.FIELD_NOT_FOUND: FieldNotFoundError,
    ErrorCode.UNSUPPORTED_INDEX_TYPE: UnsupportedIndexTypeError,
    ErrorCode.INVALID_SCHEMA: SchemaError,
    ErrorCode.SCHEMA_MISMATCH: SchemaMismatchError,
    ErrorCode.DIMENSION_MISMATCH: DimensionMismatchError,
    ErrorCode.INVALID_FILTER: InvalidFilterError,
    ErrorCode.INVALID_PARAMETER: ParamError,
    ErrorCode.AUTHENTICATION_FAILED: AuthenticationError,
}


def error_from_code(code: int, message: str) -> VectorDBError:
    """
    Build the exception for a non-zero envelope code

    Args:
        code: Error code from the response envelope
        message: Error message from the response envelope

    Returns:
        Exception instance, ``TransientError`` for unknown codes
    """
    error_cls = _ERRORS_BY_CODE.get(code, TransientError)
    return error_cls(message or f"server returned error code {code}", code=code)


def error_from_http_status(http_status: int, reason: str) -> VectorDBError:
    """Build the exception for a non-2xx HTTP response without an envelope"""
    message = f"HTTP {http_status}: {reason}"
    if http_status in (401, 403):
        return AuthenticationError(message, code=http_status)
    if http_status == 404:
        return ConnectionError(
            f"{message} (endpoint missing, server does not speak this API version)",
            code=http_status,
        )
    if http_status in (408, 504):
        return RequestTimeoutError(message, code=http_status)
    if 400 <= http_status < 500:
        return ParamError(message, code=http_status)
    return TransientError(message, code=http_status)
