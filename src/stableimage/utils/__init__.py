from .redact import mask_bearer, redact, redact_api_key

__all__ = [
    "mask_bearer",
    "redact",
    "redact_api_key",
]
