"""Cache and lock key layout.

Every entry the engine writes for an idempotency key lives under
``idempotency:{key}:``. Alert fingerprints share the prefix but not the key.
"""

PREFIX = "idempotency"


def response_key(key: str) -> str:
    return f"{PREFIX}:{key}:response"


def processing_key(key: str) -> str:
    return f"{PREFIX}:{key}:processing"


def metadata_key(key: str) -> str:
    return f"{PREFIX}:{key}:metadata"


def hits_key(key: str) -> str:
    return f"{PREFIX}:{key}:hits"


def lock_key(key: str) -> str:
    return f"{PREFIX}:{key}:lock"


def alert_key(fingerprint: str) -> str:
    return f"{PREFIX}:alert_sent:{fingerprint}"
