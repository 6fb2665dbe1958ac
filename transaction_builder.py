import base64
import logging

from solders.compute_budget import set_compute_unit_limit
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

import candy_machine
from config import ONE_PHASE, TWO_PHASE
from cosigner import apply_backend_signatures
from eligibility import check_eligibility
from errors import (
    CapacityExhaustedError,
    LedgerUnavailableError,
    NotEligibleError,
    SigningError,
)
from identity_store import parse_identity
from pending_store import PendingSignerSet
from transaction_wire import WireTransaction

logger = logging.getLogger(__name__)


class BuiltTransaction:
    def __init__(self, wallet, transaction, mint_address, blockhash, signing_mode, signers,
                 backend_signers, pending=None):
        self.wallet = wallet
        self.transaction = transaction
        self.mint_address = mint_address
        self.blockhash = blockhash
        self.signing_mode = signing_mode
        self.signers = signers
        self.backend_signers = backend_signers
        self.pending = pending

    @property
    def encoded(self):
        return base64.b64encode(self.transaction).decode('ascii')

    def to_dict(self):
        return {
            'transaction': self.encoded,
            'mint': self.mint_address,
            'blockhash': self.blockhash,
            'signingMode': self.signing_mode,
            'signers': self.signers,
        }


class MintTransactionBuilder:
    """Builds a Candy Machine ``mint_v2`` transaction for a whitelisted wallet.

    Every required signer gets a slot in the signature table before anything
    is signed. In two-phase mode the backend keypairs are parked in the
    pending store until ``CoSigner`` completes the transaction; in one-phase
    mode they sign straight away and only the requester slot is left empty.
    """

    def __init__(self, identity_store, rpc, authority, candy_machine_id, pending_store=None,
                 signing_mode=TWO_PHASE, compute_unit_limit=800000):
        self.identity_store = identity_store
        self.rpc = rpc
        self.authority = authority
        self.candy_machine_id = Pubkey.from_string(str(candy_machine_id))
        self.pending_store = pending_store
        self.signing_mode = signing_mode
        self.compute_unit_limit = compute_unit_limit
        if signing_mode == TWO_PHASE and pending_store is None:
            raise ValueError('Two-phase signing needs a pending store')

    def fetch_candy_machine(self):
        data = self.rpc.get_account_data(self.candy_machine_id)
        if data is None:
            raise LedgerUnavailableError(f'Candy machine {self.candy_machine_id} not found')
        try:
            return candy_machine.CandyMachineState.from_account_data(data)
        except ValueError as e:
            raise LedgerUnavailableError(f'Unreadable candy machine account: {str(e)}')

    def fetch_collection_update_authority(self, collection_mint):
        data = self.rpc.get_account_data(candy_machine.find_metadata_pda(collection_mint))
        if data is None:
            raise LedgerUnavailableError(f'Collection metadata for {collection_mint} not found')
        try:
            return candy_machine.metadata_update_authority(data)
        except ValueError as e:
            raise LedgerUnavailableError(f'Unreadable collection metadata: {str(e)}')

    def build(self, wallet):
        requester = parse_identity(wallet)
        wallet = str(requester)

        eligibility = check_eligibility(self.identity_store, wallet)
        if not eligibility.eligible:
            raise NotEligibleError(eligibility.reason)

        state = self.fetch_candy_machine()
        if state.items_remaining <= 0:
            raise CapacityExhaustedError('Candy machine exhausted')
        if state.mint_authority != self.authority.pubkey():
            raise SigningError('Candy machine mint authority is not held by this service')

        collection_update_authority = self.fetch_collection_update_authority(state.collection_mint)
        nft_mint = Keypair()
        instructions = [
            set_compute_unit_limit(self.compute_unit_limit),
            candy_machine.mint_v2_instruction(
                self.candy_machine_id,
                state,
                payer=requester,
                nft_owner=requester,
                nft_mint=nft_mint.pubkey(),
                collection_update_authority=collection_update_authority,
            ),
        ]

        blockhash = self.rpc.get_latest_blockhash()
        message = Message.new_with_blockhash(instructions, requester, Hash.from_string(blockhash))
        signer_keys = list(message.account_keys)[:message.header.num_required_signatures]
        if set(signer_keys) != set(candy_machine.required_signers(instructions)):
            raise SigningError('Compiled signer table does not match instruction signers')

        held = {keypair.pubkey(): keypair for keypair in (self.authority, nft_mint)}
        backend_signers = {}
        for identity in signer_keys:
            if identity == requester:
                continue
            if identity not in held:
                raise SigningError(f'Required signer {identity} is not held by this service')
            backend_signers[identity] = held[identity]

        transaction = WireTransaction.from_bytes(bytes(Transaction.new_unsigned(message)))

        pending = None
        if self.signing_mode == ONE_PHASE:
            apply_backend_signatures(transaction, backend_signers)
        else:
            pending = PendingSignerSet(wallet, backend_signers, transaction.message, str(nft_mint.pubkey()))
            self.pending_store.put(wallet, pending)

        logger.info(
            f'Built {self.signing_mode} mint transaction for {wallet}: '
            f'mint {nft_mint.pubkey()}, {len(signer_keys)} signer slot(s), '
            f'{state.items_remaining} item(s) remaining'
        )
        return BuiltTransaction(
            wallet=wallet,
            transaction=transaction.to_bytes(),
            mint_address=str(nft_mint.pubkey()),
            blockhash=blockhash,
            signing_mode=self.signing_mode,
            signers=[str(identity) for identity in signer_keys],
            backend_signers=[str(identity) for identity in backend_signers],
            pending=pending,
        )
