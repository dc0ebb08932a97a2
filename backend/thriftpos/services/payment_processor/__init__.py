# Overview: Registry of configured payment processors, keyed by name.

"""
Payment processor registry.

The "mock" processor is always available. Additional backends register
themselves with register_processor(); the default is taken from the
PAYMENT_PROCESSOR config value. Swapping backends requires no change to
the sale engine or the payment handlers.
"""

from __future__ import annotations

from flask import Flask, current_app

from ...errors import ProcessorNotFound
from .base import (
    PaymentProcessor,
    AuthorizationResult,
    CaptureResult,
    VoidResult,
    RefundResult,
    validate_card,
    get_card_brand,
)
from .mock import MockPaymentProcessor

EXTENSION_KEY = "thriftpos.payment_processors"


def init_app(app: Flask) -> None:
    app.extensions[EXTENSION_KEY] = {
        "mock": MockPaymentProcessor(delay_ms=app.config.get("MOCK_PROCESSOR_DELAY_MS", 0)),
    }


def _registry() -> dict[str, PaymentProcessor]:
    return current_app.extensions.setdefault(EXTENSION_KEY, {})


def register_processor(processor: PaymentProcessor, name: str | None = None) -> None:
    """Register (or replace) a processor under its name in the current app."""
    _registry()[name or processor.name] = processor


def get_processor(name: str | None = None) -> PaymentProcessor:
    processor_name = name or current_app.config.get("PAYMENT_PROCESSOR", "mock")
    processor = _registry().get(processor_name)
    if processor is None:
        raise ProcessorNotFound(
            f'Payment processor "{processor_name}" not found or not configured',
            details={"processor": processor_name},
        )
    return processor


def get_available_processors() -> list[str]:
    return sorted(_registry().keys())


__all__ = [
    "PaymentProcessor",
    "AuthorizationResult",
    "CaptureResult",
    "VoidResult",
    "RefundResult",
    "MockPaymentProcessor",
    "init_app",
    "register_processor",
    "get_processor",
    "get_available_processors",
    "validate_card",
    "get_card_brand",
]
