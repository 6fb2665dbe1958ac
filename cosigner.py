import base64
import binascii
import logging

from candy_machine import SYSTEM_PROGRAM_ID
from errors import PendingExpiredError, SigningError, ValidationError, WireFormatError
from identity_store import parse_identity
from transaction_wire import WireTransaction

logger = logging.getLogger(__name__)


def apply_backend_signatures(transaction, signers):
    """Sign ``transaction.message`` with every backend keypair, slotting by pubkey.

    The System Program identity never carries a signature: it is skipped if
    present in ``signers`` and its slot, if any, is left empty.
    """
    signed = []
    for identity, keypair in signers.items():
        if identity == SYSTEM_PROGRAM_ID:
            logger.warning('Refusing to sign for the System Program identity')
            continue
        if keypair.pubkey() != identity:
            raise SigningError(f'Keypair does not match signer {identity}')
        transaction.set_signature(identity, keypair.sign_message(transaction.message))
        signed.append(identity)
    transaction.clear_signature(SYSTEM_PROGRAM_ID)
    return signed


def decode_transaction(encoded):
    if not encoded or not isinstance(encoded, str):
        raise ValidationError('Transaction required')
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError('Transaction must be base64 encoded')


class CoSigner:
    """Completes a requester-signed transaction with the backend signatures."""

    def __init__(self, pending_store, strict_message_match=True):
        self.pending_store = pending_store
        self.strict_message_match = strict_message_match

    def cosign(self, wallet, encoded_transaction):
        requester = parse_identity(wallet)
        wallet = str(requester)
        raw = decode_transaction(encoded_transaction)

        entry = self.pending_store.get(wallet)
        if entry is None:
            raise PendingExpiredError('Pending transaction expired, request a new transaction')

        try:
            transaction = WireTransaction.from_bytes(raw)
        except WireFormatError as e:
            raise ValidationError(f'Invalid transaction: {e.message}')

        if transaction.fee_payer != requester:
            raise ValidationError('Fee payer in submitted transaction does not match wallet')
        if transaction.signature_for(requester) is None:
            raise ValidationError('Transaction has not been signed by the wallet')
        if self.strict_message_match and transaction.message != entry.message:
            raise ValidationError('Transaction message was modified after it was built')

        requester_signature = transaction.signature_for(requester)
        try:
            signed = apply_backend_signatures(transaction, entry.signers)
            out = transaction.to_bytes()
        except SigningError:
            raise
        except Exception as e:
            logger.error(f'Co-signing failed for {wallet}: {str(e)}')
            raise SigningError(f'Failed to co-sign transaction: {str(e)}') from e

        if transaction.signature_for(requester) != requester_signature:
            raise SigningError('Requester signature changed during co-signing')

        if not self.pending_store.pop_if(wallet, entry):
            logger.info(f'Pending transaction for {wallet} was replaced while co-signing')
        logger.info(f'Co-signed transaction for {wallet} with {len(signed)} backend signature(s)')
        return base64.b64encode(out).decode('ascii'), entry
