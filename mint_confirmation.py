import logging

from solders.signature import Signature

from errors import ValidationError
from identity_store import parse_identity

logger = logging.getLogger(__name__)

CONFIRMED_STATUSES = ('confirmed', 'finalized')


def parse_signature(signature):
    if not signature or not isinstance(signature, str):
        raise ValidationError('Signature required')
    try:
        return Signature.from_string(signature.strip())
    except ValueError:
        raise ValidationError(f'Invalid transaction signature: {signature}')


def explorer_url(signature):
    return f'https://solscan.io/tx/{signature}'


class MintConfirmation:
    def __init__(self, identity_store, rpc):
        self.identity_store = identity_store
        self.rpc = rpc

    def confirm(self, wallet, signature):
        """
        Record ``wallet`` as minted once the ledger reports ``signature`` as
        confirmed or finalized. The minted-list is untouched otherwise.
        """
        wallet = str(parse_identity(wallet))
        signature = str(parse_signature(signature))

        status = self.rpc.get_signature_status(signature)
        if status is None:
            observed = 'not_found'
        elif status.get('err') is not None:
            observed = 'failed'
        else:
            observed = status.get('confirmationStatus') or 'processed'

        result = {
            'signature': signature,
            'status': observed,
            'solscan': explorer_url(signature),
        }
        if observed not in CONFIRMED_STATUSES:
            logger.info(f'Mint for {wallet} not confirmed yet: {signature} is {observed}')
            result.update(success=False, message=f'Transaction not confirmed (status: {observed})')
            return result

        appended = self.identity_store.append_minted(wallet)
        result.update(
            success=True,
            message='Mint recorded' if appended else 'Mint already recorded',
        )
        return result
