"""Binary layout of a serialized Solana transaction.

    transaction := shortvec(n) signature[n] message
    signature   := 64 bytes (all zero when the slot is still empty)
    message     := [version prefix] header shortvec(k) pubkey[k] ...
    header      := num_required_signatures num_readonly_signed num_readonly_unsigned

Slot ``i`` of the signature table belongs to account key ``i`` for every
``i < num_required_signatures``. Only the prefix of the message needed to
map slots to keys is decoded; the message itself is carried as opaque bytes
so that signatures are always computed over exactly what the client saw.
"""
import logging

from solders.pubkey import Pubkey
from solders.signature import Signature

from errors import WireFormatError

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 64
PUBKEY_LENGTH = 32
EMPTY_SIGNATURE = bytes(SIGNATURE_LENGTH)
VERSION_PREFIX_MASK = 0x80


class BinaryReader:
    def __init__(self, data):
        self._data = bytes(data)
        self.offset = 0

    @property
    def remaining(self):
        return len(self._data) - self.offset

    def read(self, length):
        if length < 0 or length > self.remaining:
            raise WireFormatError(
                f'Unexpected end of transaction data at offset {self.offset} '
                f'(wanted {length} bytes, {self.remaining} left)'
            )
        chunk = self._data[self.offset:self.offset + length]
        self.offset += length
        return chunk

    def read_u8(self):
        return self.read(1)[0]

    def peek_u8(self):
        if self.remaining < 1:
            raise WireFormatError(f'Unexpected end of transaction data at offset {self.offset}')
        return self._data[self.offset]

    def read_shortvec(self):
        """Compact-u16: 7 bits per byte, little endian, at most three bytes."""
        value = 0
        for index in range(3):
            byte = self.read_u8()
            value |= (byte & 0x7F) << (7 * index)
            if not byte & 0x80:
                return value
        raise WireFormatError('Compact length prefix is longer than three bytes')

    def read_rest(self):
        return self.read(self.remaining)


def encode_shortvec(value):
    if value < 0 or value > 0xFFFF:
        raise WireFormatError(f'Length {value} cannot be encoded as compact-u16')
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


class WireTransaction:
    """A transaction split into its signature table and raw message bytes."""

    def __init__(self, signatures, message, num_required_signatures, signer_keys, version=None):
        self.signatures = list(signatures)
        self.message = bytes(message)
        self.num_required_signatures = num_required_signatures
        self.signer_keys = list(signer_keys)
        self.version = version
        # Slots appended for identities missing from the message header.
        self.extra_keys = []

    @classmethod
    def from_bytes(cls, raw):
        reader = BinaryReader(raw)
        count = reader.read_shortvec()
        signatures = [reader.read(SIGNATURE_LENGTH) for _ in range(count)]
        message = reader.read_rest()

        message_reader = BinaryReader(message)
        version = None
        if message_reader.peek_u8() & VERSION_PREFIX_MASK:
            version = message_reader.read_u8() & ~VERSION_PREFIX_MASK
        num_required = message_reader.read_u8()
        message_reader.read_u8()
        message_reader.read_u8()
        key_count = message_reader.read_shortvec()
        if key_count < num_required:
            raise WireFormatError(
                f'Message declares {num_required} signers but only {key_count} account keys'
            )
        signer_keys = [
            Pubkey.from_bytes(message_reader.read(PUBKEY_LENGTH))
            for _ in range(num_required)
        ]
        if count != num_required:
            raise WireFormatError(
                f'Signature table has {count} slots but message requires {num_required}'
            )
        return cls(signatures, message, num_required, signer_keys, version=version)

    @property
    def fee_payer(self):
        return self.signer_keys[0] if self.signer_keys else None

    def slot_keys(self):
        return self.signer_keys + self.extra_keys

    def signature_table(self):
        """List of ``(Pubkey, Signature or None)`` in slot order."""
        table = []
        for key, raw in zip(self.slot_keys(), self.signatures):
            table.append((key, None if raw == EMPTY_SIGNATURE else Signature.from_bytes(raw)))
        return table

    def slot_index(self, identity):
        try:
            return self.slot_keys().index(identity)
        except ValueError:
            return None

    def signature_for(self, identity):
        index = self.slot_index(identity)
        if index is None or self.signatures[index] == EMPTY_SIGNATURE:
            return None
        return Signature.from_bytes(self.signatures[index])

    def set_signature(self, identity, signature):
        raw = bytes(signature)
        if len(raw) != SIGNATURE_LENGTH:
            raise WireFormatError(f'Signature must be {SIGNATURE_LENGTH} bytes, got {len(raw)}')
        index = self.slot_index(identity)
        if index is None:
            logger.warning(f'No signature slot for {identity}; appending one')
            self.extra_keys.append(identity)
            self.signatures.append(raw)
            return len(self.signatures) - 1
        self.signatures[index] = raw
        return index

    def clear_signature(self, identity):
        index = self.slot_index(identity)
        if index is not None:
            self.signatures[index] = EMPTY_SIGNATURE
        return index

    def to_bytes(self):
        return encode_shortvec(len(self.signatures)) + b''.join(self.signatures) + self.message
