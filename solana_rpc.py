import base64
import itertools
import json
import logging

import requests

from errors import LedgerUnavailableError

logger = logging.getLogger(__name__)

JSONRPC_INTERNAL_ERROR = -32603


class SolanaRpc:
    """Thin JSON-RPC client for the ledger endpoint plus a verbatim relay."""

    def __init__(self, endpoint, timeout=30, session=None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    def call(self, method, params=None):
        body = {'jsonrpc': '2.0', 'id': next(self._ids), 'method': method}
        if params is not None:
            body['params'] = params
        try:
            response = self.session.post(self.endpoint, json=body, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f'RPC {method} failed: {str(e)}')
            raise LedgerUnavailableError(f'Ledger RPC unavailable: {str(e)}') from e

        if payload.get('error'):
            error = payload['error']
            message = error.get('message') if isinstance(error, dict) else str(error)
            raise LedgerUnavailableError(f'Ledger RPC {method} error: {message}')
        return payload.get('result')

    def get_latest_blockhash(self, commitment='confirmed'):
        result = self.call('getLatestBlockhash', [{'commitment': commitment}])
        try:
            return result['value']['blockhash']
        except (KeyError, TypeError) as e:
            raise LedgerUnavailableError('Malformed getLatestBlockhash response') from e

    def get_account_data(self, address, commitment='confirmed'):
        """Raw account data as bytes, or None if the account does not exist."""
        result = self.call('getAccountInfo', [str(address), {'encoding': 'base64', 'commitment': commitment}])
        value = (result or {}).get('value')
        if value is None:
            return None
        data, encoding = value['data']
        if encoding != 'base64':
            raise LedgerUnavailableError(f'Unexpected account encoding {encoding}')
        return base64.b64decode(data)

    def get_signature_status(self, signature):
        """Status dict for one signature (searching history), or None if unknown."""
        result = self.call('getSignatureStatuses', [[str(signature)], {'searchTransactionHistory': True}])
        values = (result or {}).get('value') or [None]
        return values[0]

    def relay(self, body):
        """Forward ``body`` (bytes) to the endpoint and return (status, bytes).

        Transport failures become a JSON-RPC internal error carrying the
        request id, so browser clients always receive a JSON-RPC envelope.
        """
        try:
            response = self.session.post(
                self.endpoint,
                data=body,
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f'RPC relay failed: {str(e)}')
            envelope = {
                'jsonrpc': '2.0',
                'error': {'code': JSONRPC_INTERNAL_ERROR, 'message': f'Internal error: {str(e)}'},
                'id': request_id(body),
            }
            return 200, json.dumps(envelope).encode('utf-8')
        return response.status_code, response.content


def request_id(body):
    try:
        payload = json.loads(body)
    except (TypeError, ValueError):
        return None
    if isinstance(payload, dict):
        return payload.get('id')
    return None
