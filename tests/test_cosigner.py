import base64

import pytest
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction

from candy_machine import SYSTEM_PROGRAM_ID
from cosigner import CoSigner, apply_backend_signatures
from errors import PendingExpiredError, SigningError, ValidationError
from pending_store import PendingSignerSet, PendingSignerStore
from transaction_wire import WireTransaction


def _unsigned(payer, *signers):
    accounts = [AccountMeta(payer.pubkey(), is_signer=True, is_writable=True)]
    accounts += [AccountMeta(key, is_signer=True, is_writable=False) for key in signers]
    instruction = Instruction(Keypair().pubkey(), b'\x00', accounts)
    message = Message.new_with_blockhash([instruction], payer.pubkey(), Hash.new_unique())
    return WireTransaction.from_bytes(bytes(Transaction.new_unsigned(message)))


def _encode(wire):
    return base64.b64encode(wire.to_bytes()).decode()


def test_system_program_slot_is_never_signed():
    payer, cosigner = Keypair(), Keypair()
    wire = _unsigned(payer, cosigner.pubkey(), SYSTEM_PROGRAM_ID)
    wire.signatures[wire.slot_index(SYSTEM_PROGRAM_ID)] = b'\x01' * 64

    signed = apply_backend_signatures(wire, {SYSTEM_PROGRAM_ID: Keypair(), cosigner.pubkey(): cosigner})

    assert signed == [cosigner.pubkey()]
    assert wire.signature_for(SYSTEM_PROGRAM_ID) is None
    assert wire.signature_for(cosigner.pubkey()).verify(cosigner.pubkey(), wire.message)


def test_mismatched_keypair_is_refused():
    payer, cosigner = Keypair(), Keypair()
    wire = _unsigned(payer, cosigner.pubkey())
    with pytest.raises(SigningError):
        apply_backend_signatures(wire, {cosigner.pubkey(): Keypair()})


def test_missing_slot_falls_back_to_append(pending_store):
    payer, cosigner, extra = Keypair(), Keypair(), Keypair()
    wire = _unsigned(payer, cosigner.pubkey())
    signers = {cosigner.pubkey(): cosigner, extra.pubkey(): extra}
    pending_store.put(str(payer.pubkey()), PendingSignerSet(str(payer.pubkey()), signers, wire.message, 'mint'))
    wire.set_signature(payer.pubkey(), payer.sign_message(wire.message))

    encoded, _ = CoSigner(pending_store, strict_message_match=False).cosign(str(payer.pubkey()), _encode(wire))

    out = base64.b64decode(encoded)
    assert out[0] == 3
    assert out[1 + 64 * 3:] == wire.message


def test_non_strict_mode_signs_submitted_message(pending_store):
    payer, cosigner = Keypair(), Keypair()
    built = _unsigned(payer, cosigner.pubkey())
    pending_store.put(
        str(payer.pubkey()),
        PendingSignerSet(str(payer.pubkey()), {cosigner.pubkey(): cosigner}, built.message, 'mint'),
    )
    submitted = _unsigned(payer, cosigner.pubkey())
    submitted.set_signature(payer.pubkey(), payer.sign_message(submitted.message))

    with pytest.raises(ValidationError):
        CoSigner(pending_store).cosign(str(payer.pubkey()), _encode(submitted))
    assert str(payer.pubkey()) in pending_store

    encoded, _ = CoSigner(pending_store, strict_message_match=False).cosign(str(payer.pubkey()), _encode(submitted))
    final = WireTransaction.from_bytes(base64.b64decode(encoded))
    assert final.signature_for(cosigner.pubkey()).verify(cosigner.pubkey(), submitted.message)


def test_unknown_wallet_is_expired(pending_store):
    payer = Keypair()
    wire = _unsigned(payer)
    with pytest.raises(PendingExpiredError):
        CoSigner(pending_store).cosign(str(payer.pubkey()), _encode(wire))


def test_rebuild_during_cosign_keeps_newer_entry(timer):
    payer, cosigner = Keypair(), Keypair()
    wallet = str(payer.pubkey())
    wire = _unsigned(payer, cosigner.pubkey())
    newer = PendingSignerSet(wallet, {cosigner.pubkey(): cosigner}, b'rebuilt', 'newer-mint')

    class RebuildingStore(PendingSignerStore):
        def get(self, key):
            entry = super().get(key)
            self.put(key, newer)
            return entry

    store = RebuildingStore(ttl=300, timer=timer)
    store.put(wallet, PendingSignerSet(wallet, {cosigner.pubkey(): cosigner}, wire.message, 'mint'))
    wire.set_signature(payer.pubkey(), payer.sign_message(wire.message))

    CoSigner(store).cosign(wallet, _encode(wire))

    assert PendingSignerStore.get(store, wallet) is newer
