from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base error for transfer gateway calls.

    ``status_code`` and ``body`` keep the HTTP response for operator
    diagnosis. ``retryable`` tells the job layer whether another attempt
    with the same reference can succeed.
    """

    retryable = False

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class GatewayConfigurationError(GatewayError):
    """Missing credentials. Retried, since an operator can fix the config
    before the attempts run out."""

    retryable = True


class UnsupportedProviderError(GatewayConfigurationError):
    """No transfer adapter exists for the payout's payment provider."""

    retryable = False


class GatewayTransientError(GatewayError):
    """Timeout, connection failure, HTTP 5xx or 429. Safe to retry."""

    retryable = True


class GatewayRejectedError(GatewayError):
    """HTTP 4xx or a business rejection reported in the response body."""


class DuplicateReferenceError(GatewayRejectedError):
    """The gateway already holds a transfer with this reference.

    Usually means an earlier attempt reached the gateway but its response
    was lost, so the transfer should be looked up rather than failed.
    """


@dataclass
class BankDetails:
    account_number: str
    bank_code: str
    account_name: str = ''


@dataclass
class TransferRequest:
    amount: Decimal
    currency: str
    bank_details: BankDetails
    reference: str
    narration: Optional[str] = None


@dataclass
class TransferResult:
    reference_id: str
    gateway_status: str
    transfer_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VerifiedTransaction:
    id: str
    status: str  # 'success' | 'failed'
    amount: Optional[Decimal]
    currency: Optional[str]
    reference: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ResolvedAccount:
    account_number: str
    account_name: str


@dataclass
class Bank:
    code: str
    name: str
