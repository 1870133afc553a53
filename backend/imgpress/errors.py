"""
Classified errors raised by the compression pipeline.

Every failure of a remote phase is terminal for the request and surfaces as
one of these exceptions. Each carries the HTTP status and error code used
when the error is rendered as a JSON response.
"""
from typing import Optional


class ClassifiedError(Exception):
    """Base class for all pipeline failures."""

    kind = 'InternalError'
    error_code = 'INTERNAL_ERROR'
    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        return {
            'status': 'error',
            'error': self.kind,
            'error_code': self.error_code,
            'message': self.message,
        }


class UpstreamFetchFailed(ClassifiedError):
    """Network failure or timeout while fetching source bytes or an artifact."""
    kind = 'UpstreamFetchFailed'
    error_code = 'UPSTREAM_FETCH_FAILED'
    status_code = 502


class UpstreamRejected(ClassifiedError):
    """The compress phase returned a non-success status."""
    kind = 'UpstreamRejected'
    error_code = 'UPSTREAM_REJECTED'
    status_code = 400


class ConversionFailed(ClassifiedError):
    """The convert phase returned a non-success status."""
    kind = 'ConversionFailed'
    error_code = 'CONVERSION_FAILED'
    status_code = 400


class ConversionSuspect(ClassifiedError):
    """The conversion succeeded but its output failed the lossless size check."""
    kind = 'ConversionSuspect'
    error_code = 'CONVERSION_SUSPECT'
    status_code = 422


class InternalError(ClassifiedError):
    """Malformed upstream response or any unexpected failure."""


class Cancelled(ClassifiedError):
    """The caller abandoned the request before it finished."""
    kind = 'Cancelled'
    error_code = 'CANCELLED'
    status_code = 499
