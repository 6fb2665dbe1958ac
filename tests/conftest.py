import json
import pathlib
import struct
import sys

import pytest
from solders.hash import Hash
from solders.keypair import Keypair

_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

import candy_machine  # noqa: E402
from config import Config  # noqa: E402
from pending_store import PendingSignerStore  # noqa: E402


class FakeTimer:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class StubRpc:
    """In-memory stand-in for SolanaRpc."""

    def __init__(self):
        self.accounts = {}
        self.blockhash = str(Hash.new_unique())
        self.statuses = {}
        self.relayed = []
        self.relay_response = (200, b'{"jsonrpc":"2.0","id":1,"result":"ok"}')
        self.calls = []

    def get_account_data(self, address):
        self.calls.append(('getAccountInfo', str(address)))
        return self.accounts.get(str(address))

    def get_latest_blockhash(self):
        self.calls.append(('getLatestBlockhash', None))
        return self.blockhash

    def get_signature_status(self, signature):
        self.calls.append(('getSignatureStatuses', str(signature)))
        return self.statuses.get(str(signature))

    def relay(self, body):
        self.relayed.append(body)
        return self.relay_response


def candy_machine_data(authority, mint_authority, collection_mint, redeemed=0, available=100, token_standard=0):
    header = struct.pack(
        '<8sBB6s32s32s32sQQ',
        b'\x33' * 8,
        1,
        token_standard,
        bytes(6),
        bytes(authority),
        bytes(mint_authority),
        bytes(collection_mint),
        redeemed,
        available,
    )
    return header + bytes(64)


def metadata_data(update_authority, mint):
    return bytes([4]) + bytes(update_authority) + bytes(mint) + bytes(32)


@pytest.fixture
def authority():
    return Keypair()


@pytest.fixture
def requester():
    return Keypair()


@pytest.fixture
def candy_machine_id():
    return Keypair().pubkey()


@pytest.fixture
def collection_mint():
    return Keypair().pubkey()


@pytest.fixture
def rpc(authority, candy_machine_id, collection_mint):
    stub = StubRpc()
    stub.accounts[str(candy_machine_id)] = candy_machine_data(
        authority.pubkey(), authority.pubkey(), collection_mint
    )
    stub.accounts[str(candy_machine.find_metadata_pda(collection_mint))] = metadata_data(
        authority.pubkey(), collection_mint
    )
    return stub


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def pending_store(timer):
    return PendingSignerStore(ttl=300, maxsize=16, timer=timer)


@pytest.fixture
def list_paths(tmp_path, requester):
    whitelist = tmp_path / 'whitelist.json'
    minted = tmp_path / 'minted.json'
    whitelist.write_text(json.dumps([str(requester.pubkey())]))
    minted.write_text('[]')
    return whitelist, minted


@pytest.fixture
def make_config(tmp_path, list_paths, candy_machine_id):
    whitelist, minted = list_paths

    def _make(**overrides):
        settings = dict(
            AUTHORITY_SECRET_KEY=None,
            AUTHORITY_KEYPAIR_PATH=str(tmp_path / 'authority.json'),
            CANDY_MACHINE_ID=str(candy_machine_id),
            WHITELIST_PATH=str(whitelist),
            MINTED_PATH=str(minted),
            SQLALCHEMY_DATABASE_URI='sqlite://',
            START_SWEEPER=False,
            SIGNING_MODE='two_phase',
            STRICT_MESSAGE_MATCH=True,
        )
        settings.update(overrides)
        return Config(**settings)

    return _make


@pytest.fixture
def make_app(make_config, rpc, pending_store, authority):
    from app import create_app

    def _make(**overrides):
        return create_app(make_config(**overrides), rpc=rpc, pending_store=pending_store, authority=authority)

    return _make


@pytest.fixture
def client(make_app):
    return make_app().test_client()
