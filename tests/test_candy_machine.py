import pytest
from solders.keypair import Keypair

import candy_machine
from conftest import candy_machine_data, metadata_data


def test_parses_candy_machine_header():
    authority, collection = Keypair().pubkey(), Keypair().pubkey()
    state = candy_machine.CandyMachineState.from_account_data(
        candy_machine_data(authority, authority, collection, redeemed=7, available=10)
    )
    assert state.authority == authority
    assert state.mint_authority == authority
    assert state.collection_mint == collection
    assert state.items_remaining == 3


def test_items_remaining_never_negative():
    key = Keypair().pubkey()
    state = candy_machine.CandyMachineState.from_account_data(
        candy_machine_data(key, key, key, redeemed=12, available=10)
    )
    assert state.items_remaining == 0


def test_rejects_short_account():
    with pytest.raises(ValueError):
        candy_machine.CandyMachineState.from_account_data(bytes(40))


def test_metadata_update_authority():
    update_authority, mint = Keypair().pubkey(), Keypair().pubkey()
    assert candy_machine.metadata_update_authority(metadata_data(update_authority, mint)) == update_authority


def test_mint_v2_signers():
    authority, payer, nft_mint = Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey()
    state = candy_machine.CandyMachineState(authority, authority, Keypair().pubkey(), 0, 10)
    instruction = candy_machine.mint_v2_instruction(
        Keypair().pubkey(), state, payer=payer, nft_owner=payer, nft_mint=nft_mint,
        collection_update_authority=authority,
    )

    assert instruction.program_id == candy_machine.CANDY_MACHINE_PROGRAM_ID
    assert bytes(instruction.data) == candy_machine.MINT_V2_DISCRIMINATOR
    assert len(instruction.accounts) == 24
    assert candy_machine.required_signers([instruction]) == [authority, payer, nft_mint]


def test_programmable_nft_uses_token_record():
    authority, payer, nft_mint = Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey()
    state = candy_machine.CandyMachineState(
        authority, authority, Keypair().pubkey(), 0, 10,
        token_standard=candy_machine.PROGRAMMABLE_NON_FUNGIBLE,
    )
    instruction = candy_machine.mint_v2_instruction(
        Keypair().pubkey(), state, payer=payer, nft_owner=payer, nft_mint=nft_mint,
        collection_update_authority=authority,
    )
    token = candy_machine.find_associated_token_address(payer, nft_mint)
    token_record = instruction.accounts[10]
    assert token_record.pubkey == candy_machine.find_token_record_pda(nft_mint, token)
    assert token_record.is_writable


def test_absent_optional_accounts_use_program_placeholder():
    key = Keypair().pubkey()
    state = candy_machine.CandyMachineState(key, key, Keypair().pubkey(), 0, 10)
    instruction = candy_machine.mint_v2_instruction(
        Keypair().pubkey(), state, payer=key, nft_owner=key, nft_mint=Keypair().pubkey(),
        collection_update_authority=key,
    )
    placeholders = [instruction.accounts[i] for i in (10, 22, 23)]
    assert all(account.pubkey == candy_machine.CANDY_MACHINE_PROGRAM_ID for account in placeholders)
    assert not any(account.is_writable or account.is_signer for account in placeholders)
