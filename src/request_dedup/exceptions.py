"""Custom exceptions for the request deduplication middleware.

Only genuinely exceptional conditions are modelled as exceptions here. The
engine's own branching (replay, conflict, lock inconsistency) is reported as
a DedupOutcome, not raised.

Examples:
    Handling a key validation error::

        from request_dedup.exceptions import KeyValidationError

        try:
            key = validator.validate(request.headers.get("Idempotency-Key"))
        except KeyValidationError as e:
            return JSONResponse({"error": e.message}, status_code=e.status_code)

    Handling a storage error::

        from request_dedup.exceptions import StorageError

        try:
            await cache.get("idempotency:abc:response")
        except StorageError as e:
            logger.error("cache.unreachable", error=str(e))
            raise
"""


class IdempotencyError(Exception):
    """Base exception for all deduplication errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class KeyValidationError(IdempotencyError):
    """The idempotency key on a deduplicated request is unusable.

    These are client errors: terminal, not worth retrying with the same key.

    Attributes:
        status_code: HTTP status the middleware answers with.
        header_name: Name of the header that carried (or should carry) the key.
    """

    status_code = 400

    def __init__(self, message: str, header_name: str) -> None:
        super().__init__(message)
        self.header_name = header_name


class MissingKeyError(KeyValidationError):
    """An applicable request arrived without an idempotency key header.

    Examples:
        >>> error = MissingKeyError("Idempotency-Key")
        >>> error.message
        'Missing Idempotency-Key header'
    """

    def __init__(self, header_name: str) -> None:
        super().__init__(f"Missing {header_name} header", header_name)


class InvalidKeyFormatError(KeyValidationError):
    """The idempotency key does not match the configured pattern or is too long.

    Attributes:
        key: The rejected key value.
        reason: Short machine-friendly reason, "pattern" or "length".
    """

    def __init__(self, message: str, header_name: str, key: str, reason: str) -> None:
        super().__init__(message, header_name)
        self.key = key
        self.reason = reason


class StorageError(IdempotencyError):
    """The cache store or lock provider failed.

    The engine never recovers from these: they surface to the caller just
    like a failure of the protected operation.

    Attributes:
        cause: The underlying backend exception, if any.

    Examples:
        Raising a storage error::

            try:
                await redis.get(key)
            except RedisError as e:
                raise StorageError(f"Failed to read {key}: {e}", cause=e) from e
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class TelemetryConfigurationError(IdempotencyError):
    """The configured telemetry driver cannot be built."""
