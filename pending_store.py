import logging
import threading
import time
from datetime import datetime

from cachetools import TTLCache

logger = logging.getLogger(__name__)


class PendingSignerSet:
    """Backend keypairs and the exact message built for one requester."""

    def __init__(self, wallet, signers, message, mint_address, record_id=None):
        self.wallet = wallet
        # {Pubkey: Keypair}
        self.signers = dict(signers)
        self.message = bytes(message)
        self.mint_address = mint_address
        self.record_id = record_id
        self.created_at = datetime.utcnow()

    def identities(self):
        return [str(identity) for identity in self.signers]


class PendingSignerStore:
    """Process-local pending transactions keyed by requester wallet.

    Entries expire ``ttl`` seconds after they are stored. Reads never return
    an expired entry; ``sweep`` drops expired entries eagerly and is run by
    the background scheduler.
    """

    def __init__(self, ttl=300, maxsize=1024, timer=time.monotonic):
        self.ttl = ttl
        self._entries = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._lock = threading.Lock()

    def put(self, wallet, entry):
        with self._lock:
            replaced = wallet in self._entries
            self._entries[wallet] = entry
        if replaced:
            logger.info(f'Replaced pending transaction for {wallet}')

    def get(self, wallet):
        with self._lock:
            return self._entries.get(wallet)

    def pop(self, wallet):
        with self._lock:
            return self._entries.pop(wallet, None)

    def pop_if(self, wallet, entry):
        """Remove ``wallet`` only while it still maps to ``entry``."""
        with self._lock:
            if self._entries.get(wallet) is not entry:
                return False
            del self._entries[wallet]
            return True

    def sweep(self):
        with self._lock:
            expired = self._entries.expire() or []
        if expired:
            logger.info(f'Swept {len(expired)} expired pending transaction(s)')
        return len(expired)

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __contains__(self, wallet):
        with self._lock:
            return wallet in self._entries
