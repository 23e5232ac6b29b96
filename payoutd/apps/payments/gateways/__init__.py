from __future__ import annotations

from typing import Callable, Dict

from .base import (
    Bank,
    BankDetails,
    DuplicateReferenceError,
    GatewayConfigurationError,
    GatewayError,
    GatewayRejectedError,
    GatewayTransientError,
    ResolvedAccount,
    TransferRequest,
    TransferResult,
    UnsupportedProviderError,
    VerifiedTransaction,
)
from .flutterwave import FlutterwaveAdapter, FlutterwaveCredentials

_REGISTRY: Dict[str, Callable[[], object]] = {
    'FLUTTERWAVE': FlutterwaveAdapter,
}


def get_gateway(payment_provider: str):
    """Return a transfer adapter for a payout's payment provider.

    PAYSTACK is a valid provider choice but has no transfer adapter yet.
    """
    key = (payment_provider or '').strip().upper()
    builder = _REGISTRY.get(key)
    if builder is None:
        raise UnsupportedProviderError(f"No transfer gateway configured for provider {key or '<empty>'}")
    return builder()


__all__ = [
    'Bank',
    'BankDetails',
    'DuplicateReferenceError',
    'FlutterwaveAdapter',
    'FlutterwaveCredentials',
    'GatewayConfigurationError',
    'GatewayError',
    'GatewayRejectedError',
    'GatewayTransientError',
    'ResolvedAccount',
    'TransferRequest',
    'TransferResult',
    'UnsupportedProviderError',
    'VerifiedTransaction',
    'get_gateway',
]
