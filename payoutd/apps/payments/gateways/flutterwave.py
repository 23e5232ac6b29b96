from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings
from requests import Response

from .base import (
    Bank,
    DuplicateReferenceError,
    GatewayConfigurationError,
    GatewayRejectedError,
    GatewayTransientError,
    ResolvedAccount,
    TransferRequest,
    TransferResult,
    VerifiedTransaction,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = (5, 30)  # (connect, read) seconds
CENTS = Decimal('0.01')

_DUPLICATE_REFERENCE = re.compile(r'reference.*(already exist|duplicate)|duplicate.*reference', re.IGNORECASE)


@dataclass
class FlutterwaveCredentials:
    secret_key: Optional[str]
    base_url: str = 'https://api.flutterwave.com/v3'
    callback_url: Optional[str] = None

    @classmethod
    def from_settings(cls) -> 'FlutterwaveCredentials':
        base = (settings.PUBLIC_APP_URL or '').rstrip('/')
        return cls(
            secret_key=settings.FLUTTERWAVE_SECRET_KEY,
            base_url=settings.FLUTTERWAVE_BASE_URL,
            callback_url=f"{base}{settings.PAYOUT_CALLBACK_PATH}" if base else None,
        )


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class FlutterwaveAdapter:
    """Synchronous client for the Flutterwave v3 transfer API.

    No retries happen here: every failure is raised as a GatewayError
    subclass and the job layer decides whether to try again.
    """

    def __init__(self, creds: Optional[FlutterwaveCredentials] = None, timeout=None):
        self._creds = creds
        self.timeout = timeout or getattr(settings, 'FLUTTERWAVE_TIMEOUT', DEFAULT_TIMEOUT)

    @property
    def creds(self) -> FlutterwaveCredentials:
        # Read lazily so a missing key only fails the call that needs it
        return self._creds or FlutterwaveCredentials.from_settings()

    def _headers(self, creds: FlutterwaveCredentials) -> Dict[str, str]:
        if not creds.secret_key:
            raise GatewayConfigurationError('FLUTTERWAVE_SECRET_KEY is not configured')
        return {
            'Authorization': f"Bearer {creds.secret_key}",
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        creds = self.creds
        headers = self._headers(creds)
        url = f"{creds.base_url.rstrip('/')}/{path.lstrip('/')}"
        try:
            resp = requests.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise GatewayTransientError(f"Flutterwave request timed out: {method} {path}") from e
        except requests.ConnectionError as e:
            raise GatewayTransientError(f"Flutterwave connection error: {e}") from e
        return self._handle(resp)

    def _handle(self, resp: Response) -> Dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            body = resp.text[:500]

        if resp.status_code >= 500 or resp.status_code == 429:
            logger.warning(f"Flutterwave HTTP {resp.status_code}: {body}")
            raise GatewayTransientError(
                f"Flutterwave API error: HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=body,
            )
        if resp.status_code >= 400:
            message = body.get('message') if isinstance(body, dict) else body
            logger.warning(f"Flutterwave HTTP {resp.status_code}: {body}")
            error_cls = DuplicateReferenceError if _DUPLICATE_REFERENCE.search(str(message)) else GatewayRejectedError
            raise error_cls(
                f"Flutterwave API error: HTTP {resp.status_code} {message}",
                status_code=resp.status_code,
                body=body,
            )
        if not isinstance(body, dict):
            raise GatewayTransientError(
                f"Unexpected Flutterwave response: {str(body)[:200]}",
                status_code=resp.status_code,
                body=body,
            )
        if body.get('status') != 'success':
            message = body.get('message') or 'unknown error'
            error_cls = DuplicateReferenceError if _DUPLICATE_REFERENCE.search(message) else GatewayRejectedError
            raise error_cls(
                f"Flutterwave request unsuccessful: {message}",
                status_code=resp.status_code,
                body=body,
            )
        return body

    def initiate_transfer(self, request: TransferRequest) -> TransferResult:
        creds = self.creds
        details = request.bank_details
        narration = request.narration or f"Payout to {details.account_name}".strip()
        payload = {
            'account_bank': details.bank_code,
            'account_number': details.account_number,
            'amount': str(Decimal(request.amount).quantize(CENTS)),
            'currency': request.currency,
            'debit_currency': request.currency,
            'reference': request.reference,
            'narration': narration,
            'beneficiary_name': details.account_name,
        }
        if creds.callback_url:
            payload['callback_url'] = creds.callback_url

        logger.info(
            f"Initiating Flutterwave transfer {request.reference}",
            extra={
                'reference': request.reference,
                'amount': str(request.amount),
                'currency': request.currency,
                'account_last4': details.account_number[-4:],
            },
        )
        body = self._request('POST', '/transfers', json=payload)
        return self._transfer_result(body.get('data') or {}, request.reference, body)

    def find_transfer(self, reference: str) -> Optional[TransferResult]:
        """Look up a transfer previously created with ``reference``.

        Returns None when the gateway has no transfer under that reference.
        """
        body = self._request('GET', '/transfers', params={'reference': reference})
        for item in body.get('data') or []:
            if str(item.get('reference')) == reference:
                return self._transfer_result(item, reference, body)
        return None

    @staticmethod
    def _transfer_result(data: Dict[str, Any], reference: str, raw: Dict[str, Any]) -> TransferResult:
        return TransferResult(
            reference_id=str(data.get('reference') or reference),
            gateway_status=str(data.get('status') or 'NEW'),
            transfer_id=str(data['id']) if data.get('id') is not None else None,
            raw=raw,
        )

    def verify_transaction(self, transaction_id: str) -> VerifiedTransaction:
        body = self._request('GET', f"/transactions/{transaction_id}/verify")
        data = body.get('data') or {}
        return VerifiedTransaction(
            id=str(data.get('id') or transaction_id),
            status='success' if data.get('status') == 'successful' else 'failed',
            amount=_to_decimal(data.get('amount')),
            currency=data.get('currency'),
            reference=data.get('tx_ref'),
            raw=body,
        )

    def resolve_account_number(self, account_number: str, bank_code: str) -> ResolvedAccount:
        body = self._request(
            'POST',
            '/accounts/resolve',
            json={'account_number': account_number, 'account_bank': bank_code},
        )
        data = body.get('data') or {}
        return ResolvedAccount(
            account_number=str(data.get('account_number') or account_number),
            account_name=str(data.get('account_name') or ''),
        )

    def list_banks(self, country: str = 'NG') -> List[Bank]:
        body = self._request('GET', f"/banks/{country}")
        return [
            Bank(code=str(item.get('code')), name=str(item.get('name')))
            for item in body.get('data') or []
            if item.get('code')
        ]
