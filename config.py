import json
import logging
import os

from dotenv import load_dotenv
from solders.keypair import Keypair

logger = logging.getLogger(__name__)

TWO_PHASE = 'two_phase'
ONE_PHASE = 'one_phase'
SIGNING_MODES = (TWO_PHASE, ONE_PHASE)

DEFAULT_CANDY_MACHINE_ID = '3pzu8qm6Hw65VH1khEtoU3ZPi8AtGn92oyjuUvVswArJ'
DEFAULT_RPC_ENDPOINT = 'https://api.mainnet-beta.solana.com'

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _env_flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Settings read from the environment (and ``.env`` when present)."""

    def __init__(self, **overrides):
        load_dotenv()
        self.AUTHORITY_SECRET_KEY = os.getenv('AUTHORITY_SECRET_KEY')
        self.AUTHORITY_KEYPAIR_PATH = os.getenv('AUTHORITY_KEYPAIR_PATH', 'authority.json')
        self.RPC_ENDPOINT = os.getenv('RPC_ENDPOINT', DEFAULT_RPC_ENDPOINT)
        self.RPC_TIMEOUT = float(os.getenv('RPC_TIMEOUT', '30'))
        self.CANDY_MACHINE_ID = os.getenv('CANDY_MACHINE_ID', DEFAULT_CANDY_MACHINE_ID)
        self.WHITELIST_PATH = os.getenv('WHITELIST_PATH', 'whitelist.json')
        self.MINTED_PATH = os.getenv('MINTED_PATH', 'minted.json')
        self.PENDING_TTL_SECONDS = int(os.getenv('PENDING_TTL_SECONDS', '300'))
        self.PENDING_MAX_ENTRIES = int(os.getenv('PENDING_MAX_ENTRIES', '1024'))
        self.SWEEP_INTERVAL_SECONDS = int(os.getenv('SWEEP_INTERVAL_SECONDS', '60'))
        self.START_SWEEPER = _env_flag('START_SWEEPER', True)
        self.SIGNING_MODE = os.getenv('SIGNING_MODE', ONE_PHASE)
        self.STRICT_MESSAGE_MATCH = _env_flag('STRICT_MESSAGE_MATCH', True)
        self.COMPUTE_UNIT_LIMIT = int(os.getenv('COMPUTE_UNIT_LIMIT', '800000'))
        self.SQLALCHEMY_DATABASE_URI = os.getenv(
            'SQLALCHEMY_DATABASE_URI',
            f"sqlite:///{os.path.join(BASE_DIR, 'instance', 'mint_records.db')}",
        )
        self.CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*')
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
        self.PORT = int(os.getenv('PORT', '3000'))
        self.DEBUG = _env_flag('FLASK_DEBUG', False)

        for key, value in overrides.items():
            setattr(self, key, value)

        if self.SIGNING_MODE not in SIGNING_MODES:
            raise ValueError(f'SIGNING_MODE must be one of {SIGNING_MODES}, got {self.SIGNING_MODE!r}')

    def to_flask(self):
        return {key: value for key, value in vars(self).items() if key.isupper()}


def keypair_from_json(text):
    """Parse a Solana CLI keypair file body (a JSON array of 64 ints)."""
    values = json.loads(text)
    if not isinstance(values, list) or len(values) != 64:
        raise ValueError('Authority secret key must be a JSON array of 64 integers')
    return Keypair.from_bytes(bytes(values))


def load_authority(config):
    """Load the backend authority keypair.

    ``AUTHORITY_SECRET_KEY`` wins when set; it is also written out to
    ``AUTHORITY_KEYPAIR_PATH`` if that file does not exist yet, so CLI tooling
    run from the same directory sees the same key.
    """
    if config.AUTHORITY_SECRET_KEY:
        keypair = keypair_from_json(config.AUTHORITY_SECRET_KEY)
        path = config.AUTHORITY_KEYPAIR_PATH
        if path and not os.path.exists(path):
            with open(path, 'w') as f:
                json.dump(list(bytes(keypair)), f, indent=2)
            logger.info(f'{path} created from environment variable')
        return keypair

    path = config.AUTHORITY_KEYPAIR_PATH
    if not path or not os.path.exists(path):
        raise RuntimeError('AUTHORITY_SECRET_KEY environment variable not set and no keypair file found')
    with open(path, 'r') as f:
        keypair = keypair_from_json(f.read())
    logger.info(f'{path} found')
    return keypair
