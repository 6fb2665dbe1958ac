import json
import logging
import os
import tempfile
import threading

from solders.pubkey import Pubkey

from errors import ValidationError

logger = logging.getLogger(__name__)

PUBKEY_LENGTH = 32


def parse_identity(wallet):
    """Decode a base58 wallet address, rejecting anything that is not 32 bytes."""
    if not wallet or not isinstance(wallet, str):
        raise ValidationError('Wallet required')
    try:
        identity = Pubkey.from_string(wallet.strip())
    except ValueError:
        raise ValidationError(f'Invalid wallet address: {wallet}')
    if len(bytes(identity)) != PUBKEY_LENGTH:
        raise ValidationError(f'Invalid wallet address: {wallet}')
    return identity


class IdentityStore:
    """Allow-list and minted-list kept as JSON arrays of wallet addresses.

    Both files are read fresh on every call. Writes to the minted-list go
    through a single lock and an atomic rename, so concurrent confirmations
    inside one process cannot lose each other's appends.
    """

    def __init__(self, whitelist_path, minted_path):
        self.whitelist_path = whitelist_path
        self.minted_path = minted_path
        self._write_lock = threading.Lock()

    @staticmethod
    def _load(path):
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        if not isinstance(data, list):
            raise ValueError(f'{path} must contain a JSON array of wallet addresses')
        return [str(item) for item in data]

    @staticmethod
    def _save(path, identities):
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.minted-', suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(identities, f, indent=2)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def load_whitelist(self):
        return self._load(self.whitelist_path)

    def load_minted(self):
        return self._load(self.minted_path)

    def append_minted(self, wallet):
        """Append ``wallet`` unless already present. Returns True if written."""
        with self._write_lock:
            minted = self.load_minted()
            if wallet in minted:
                return False
            minted.append(wallet)
            self._save(self.minted_path, minted)
        logger.info(f'Recorded mint for {wallet} ({len(minted)} total)')
        return True
