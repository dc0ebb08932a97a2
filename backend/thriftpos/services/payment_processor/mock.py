# Overview: In-process card processor used for development and tests.

from __future__ import annotations

import re
import secrets
import string
import time
import uuid
from decimal import Decimal

from ...errors import PaymentProcessorUnavailable
from thriftpos.time_utils import utcnow, to_utc_z
from .base import (
    PaymentProcessor,
    AuthorizationResult,
    CaptureResult,
    VoidResult,
    RefundResult,
    clean_card_number,
)


_TOKEN_BRAND = re.compile(r"mock_tok_([a-z]+)_")
_TOKEN_LAST4 = re.compile(r"mock_tok_[a-z]+_(\d{4})_")


class MockPaymentProcessor(PaymentProcessor):
    """
    Mock card processor.

    Behaviour is driven by constructor flags:
    - should_succeed=False: every operation is declined/failed
    - decline_reason: message returned on decline
    - simulate_timeout=True: every call raises PaymentProcessorUnavailable
    - delay_ms: artificial latency per call

    Authorizations are cached by idempotency key, so a retried request
    with the same key never produces a second charge. Reusing a key for a
    different amount or card is declined.
    """

    name = "mock"

    def __init__(
        self,
        *,
        should_succeed: bool = True,
        decline_reason: str | None = None,
        delay_ms: int = 0,
        simulate_timeout: bool = False,
    ):
        self.should_succeed = should_succeed
        self.decline_reason = decline_reason
        self.delay_ms = delay_ms
        self.simulate_timeout = simulate_timeout
        self._authorizations: dict[str, tuple[tuple, AuthorizationResult]] = {}

    # -------------------------------------------------------------------------

    def authorize_payment(
        self,
        *,
        amount: Decimal,
        card_token: str,
        idempotency_key: str,
        currency: str = "USD",
        metadata: dict | None = None,
    ) -> AuthorizationResult:
        self._delay()

        if idempotency_key in self._authorizations:
            cached_request, cached = self._authorizations[idempotency_key]
            if cached_request != (amount, card_token):
                reason = "Idempotency key reused with a different request"
                return AuthorizationResult(
                    success=False,
                    status="declined",
                    message=reason,
                    processor_response={"error": reason, "timestamp": self._timestamp()},
                )
            return cached

        if not self.should_succeed:
            reason = self.decline_reason or "Card declined"
            return AuthorizationResult(
                success=False,
                status="declined",
                message=reason,
                processor_response={"error": reason, "timestamp": self._timestamp()},
            )

        auth_id = f"mock_auth_{uuid.uuid4().hex[:8]}"
        auth_code = self._generate_auth_code()
        brand = self._brand_from_token(card_token)
        last4 = self._last4_from_token(card_token)

        result = AuthorizationResult(
            success=True,
            status="authorized",
            authorization_id=auth_id,
            authorization_code=auth_code,
            message="Payment authorized successfully",
            card_brand=brand,
            card_last4=last4,
            amount=amount,
            processor_response={
                "authorization_id": auth_id,
                "authorization_code": auth_code,
                "amount": str(amount),
                "currency": currency,
                "idempotency_key": idempotency_key,
                "timestamp": self._timestamp(),
                "card_brand": brand,
                "card_last4": last4,
                "metadata": metadata or {},
            },
        )
        self._authorizations[idempotency_key] = ((amount, card_token), result)
        return result

    def capture_payment(self, authorization_id: str, amount: Decimal) -> CaptureResult:
        self._delay()

        if not self.should_succeed:
            return CaptureResult(
                success=False,
                status="failed",
                message="Capture failed",
                processor_response={"error": "Capture failed", "timestamp": self._timestamp()},
            )

        capture_id = f"mock_capture_{uuid.uuid4().hex[:8]}"
        payment_id = f"mock_payment_{uuid.uuid4().hex[:8]}"
        return CaptureResult(
            success=True,
            status="captured",
            payment_id=payment_id,
            capture_id=capture_id,
            amount=amount,
            message="Payment captured successfully",
            processor_response={
                "capture_id": capture_id,
                "payment_id": payment_id,
                "authorization_id": authorization_id,
                "amount": str(amount),
                "currency": "USD",
                "timestamp": self._timestamp(),
            },
        )

    def void_payment(self, authorization_id: str) -> VoidResult:
        self._delay()

        if not self.should_succeed:
            return VoidResult(
                success=False,
                status="failed",
                message="Void failed",
                processor_response={"error": "Void failed", "timestamp": self._timestamp()},
            )

        void_id = f"mock_void_{uuid.uuid4().hex[:8]}"
        return VoidResult(
            success=True,
            status="voided",
            void_id=void_id,
            message="Payment voided successfully",
            processor_response={
                "void_id": void_id,
                "authorization_id": authorization_id,
                "timestamp": self._timestamp(),
            },
        )

    def refund_payment(self, payment_id: str, amount: Decimal) -> RefundResult:
        self._delay()

        if not self.should_succeed:
            return RefundResult(
                success=False,
                status="failed",
                message="Refund failed",
                processor_response={"error": "Refund failed", "timestamp": self._timestamp()},
            )

        refund_id = f"mock_refund_{uuid.uuid4().hex[:8]}"
        return RefundResult(
            success=True,
            status="refunded",
            refund_id=refund_id,
            amount=amount,
            message="Payment refunded successfully",
            processor_response={
                "refund_id": refund_id,
                "payment_id": payment_id,
                "amount": str(amount),
                "currency": "USD",
                "timestamp": self._timestamp(),
            },
        )

    def create_card_token(self, card_number: str) -> str:
        """Tokenize a card number: mock_tok_<brand>_<last4>_<random>."""
        self._delay()

        if not self.validate_card(card_number):
            raise ValueError("Invalid card number")

        cleaned = clean_card_number(card_number)
        brand = self.get_card_brand(cleaned)
        return f"mock_tok_{brand}_{cleaned[-4:]}_{uuid.uuid4().hex[:8]}"

    # -------------------------------------------------------------------------

    def _delay(self) -> None:
        if self.simulate_timeout:
            raise PaymentProcessorUnavailable("Payment processor timed out")
        if self.delay_ms:
            time.sleep(self.delay_ms / 1000)

    @staticmethod
    def _timestamp() -> str:
        return to_utc_z(utcnow())

    @staticmethod
    def _generate_auth_code() -> str:
        alphabet = string.ascii_uppercase + string.digits
        return "".join(secrets.choice(alphabet) for _ in range(6))

    @staticmethod
    def _brand_from_token(token: str) -> str:
        match = _TOKEN_BRAND.search(token or "")
        return match.group(1) if match else "unknown"

    @staticmethod
    def _last4_from_token(token: str) -> str:
        match = _TOKEN_LAST4.search(token or "")
        return match.group(1) if match else "0000"
