"""Metaplex Candy Machine Core (v3) accounts and the ``mint_v2`` instruction."""
import hashlib
import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

CANDY_MACHINE_PROGRAM_ID = Pubkey.from_string('CndyV3LdqHUfDLmE5naZjVN8rBZz4tqhdefbAnjHG3JR')
TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string('metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s')
TOKEN_PROGRAM_ID = Pubkey.from_string('TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA')
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string('ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL')
SYSTEM_PROGRAM_ID = Pubkey.from_string('11111111111111111111111111111111')
SYSVAR_INSTRUCTIONS_ID = Pubkey.from_string('Sysvar1nstructions1111111111111111111111111')
SYSVAR_SLOT_HASHES_ID = Pubkey.from_string('SysvarS1otHashes111111111111111111111111111')

PROGRAMMABLE_NON_FUNGIBLE = 4

MINT_V2_DISCRIMINATOR = hashlib.sha256(b'global:mint_v2').digest()[:8]

# discriminator(8) version(1) token_standard(1) features(6) authority(32)
# mint_authority(32) collection_mint(32) items_redeemed(u64) items_available(u64)
_CANDY_MACHINE_HEADER = struct.Struct('<8sBB6s32s32s32sQQ')


class CandyMachineState:
    def __init__(self, authority, mint_authority, collection_mint, items_redeemed, items_available,
                 token_standard=0):
        self.authority = authority
        self.mint_authority = mint_authority
        self.collection_mint = collection_mint
        self.items_redeemed = items_redeemed
        self.items_available = items_available
        self.token_standard = token_standard

    @property
    def items_remaining(self):
        return max(self.items_available - self.items_redeemed, 0)

    @classmethod
    def from_account_data(cls, data):
        if len(data) < _CANDY_MACHINE_HEADER.size:
            raise ValueError(f'Candy machine account too short ({len(data)} bytes)')
        (_, _, token_standard, _, authority, mint_authority, collection_mint,
         items_redeemed, items_available) = _CANDY_MACHINE_HEADER.unpack_from(data)
        return cls(
            authority=Pubkey.from_bytes(authority),
            mint_authority=Pubkey.from_bytes(mint_authority),
            collection_mint=Pubkey.from_bytes(collection_mint),
            items_redeemed=items_redeemed,
            items_available=items_available,
            token_standard=token_standard,
        )


def metadata_update_authority(data):
    """Update authority of a Token Metadata ``Metadata`` account (key byte, then pubkey)."""
    if len(data) < 33:
        raise ValueError(f'Metadata account too short ({len(data)} bytes)')
    return Pubkey.from_bytes(data[1:33])


def find_authority_pda(candy_machine):
    return Pubkey.find_program_address([b'candy_machine', bytes(candy_machine)], CANDY_MACHINE_PROGRAM_ID)[0]


def find_metadata_pda(mint):
    return Pubkey.find_program_address(
        [b'metadata', bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)], TOKEN_METADATA_PROGRAM_ID
    )[0]


def find_master_edition_pda(mint):
    return Pubkey.find_program_address(
        [b'metadata', bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint), b'edition'], TOKEN_METADATA_PROGRAM_ID
    )[0]


def find_token_record_pda(mint, token):
    return Pubkey.find_program_address(
        [b'metadata', bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint), b'token_record', bytes(token)],
        TOKEN_METADATA_PROGRAM_ID,
    )[0]


def find_collection_delegate_record_pda(collection_mint, update_authority, delegate):
    return Pubkey.find_program_address(
        [
            b'metadata',
            bytes(TOKEN_METADATA_PROGRAM_ID),
            bytes(collection_mint),
            b'collection_delegate',
            bytes(update_authority),
            bytes(delegate),
        ],
        TOKEN_METADATA_PROGRAM_ID,
    )[0]


def find_associated_token_address(owner, mint):
    return Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)], ASSOCIATED_TOKEN_PROGRAM_ID
    )[0]


def mint_v2_instruction(candy_machine, state, payer, nft_owner, nft_mint, collection_update_authority):
    """Build ``mint_v2`` for a candy machine without a guard.

    The candy machine's own ``mint_authority`` signs directly, ``payer`` pays
    and holds mint authority over the new NFT, and ``nft_mint`` is a fresh
    keypair that signs for its own account creation. Absent optional
    accounts are passed as the candy machine program id, as Anchor expects.
    """
    authority_pda = find_authority_pda(candy_machine)
    token = find_associated_token_address(nft_owner, nft_mint)
    if state.token_standard == PROGRAMMABLE_NON_FUNGIBLE:
        token_record = find_token_record_pda(nft_mint, token)
    else:
        token_record = CANDY_MACHINE_PROGRAM_ID
    collection_mint = state.collection_mint

    def meta(pubkey, is_signer=False, is_writable=False):
        return AccountMeta(pubkey=pubkey, is_signer=is_signer, is_writable=is_writable)

    accounts = [
        meta(candy_machine, is_writable=True),
        meta(authority_pda, is_writable=True),
        meta(state.mint_authority, is_signer=True),
        meta(payer, is_signer=True, is_writable=True),
        meta(nft_owner),
        meta(nft_mint, is_signer=True, is_writable=True),
        meta(payer, is_signer=True),
        meta(find_metadata_pda(nft_mint), is_writable=True),
        meta(find_master_edition_pda(nft_mint), is_writable=True),
        meta(token, is_writable=True),
        meta(token_record, is_writable=token_record != CANDY_MACHINE_PROGRAM_ID),
        meta(find_collection_delegate_record_pda(collection_mint, collection_update_authority, authority_pda)),
        meta(collection_mint),
        meta(find_metadata_pda(collection_mint), is_writable=True),
        meta(find_master_edition_pda(collection_mint)),
        meta(collection_update_authority),
        meta(TOKEN_METADATA_PROGRAM_ID),
        meta(TOKEN_PROGRAM_ID),
        meta(ASSOCIATED_TOKEN_PROGRAM_ID),
        meta(SYSTEM_PROGRAM_ID),
        meta(SYSVAR_INSTRUCTIONS_ID),
        meta(SYSVAR_SLOT_HASHES_ID),
        meta(CANDY_MACHINE_PROGRAM_ID),
        meta(CANDY_MACHINE_PROGRAM_ID),
    ]
    return Instruction(CANDY_MACHINE_PROGRAM_ID, MINT_V2_DISCRIMINATOR, accounts)


def required_signers(instructions):
    """Signer pubkeys named by ``instructions``, first appearance order, deduplicated."""
    seen = []
    for instruction in instructions:
        for account in instruction.accounts:
            if account.is_signer and account.pubkey not in seen:
                seen.append(account.pubkey)
    return seen
