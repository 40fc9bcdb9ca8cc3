"""Servicios de infraestructura: resiliencia (retry)."""

from .retry import create_retry_decorator, is_transient_error, with_retry

__all__ = ["create_retry_decorator", "is_transient_error", "with_retry"]
