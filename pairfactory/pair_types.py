"""
Pair Factory SDK - Data Types

Pair variants, the immutable argument block embedded in every clone,
router status entries and ledger log entries.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import time

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

ADDRESS_BYTES = 20
UINT256_BYTES = 32


class PairVariant(Enum):
    """Pair shape: NATIVE trades against the ledger's native asset, TOKEN against a fungible token"""
    NATIVE = "native"
    TOKEN = "token"

    @classmethod
    def parse(cls, value) -> Optional["PairVariant"]:
        """Resolve a variant tag, or None when it is not recognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return None


# Immutable argument block length per variant (without the trailing uint16 length)
ARGS_LENGTH = {
    PairVariant.NATIVE: ADDRESS_BYTES * 2 + UINT256_BYTES,       # factory | nft | duration
    PairVariant.TOKEN: ADDRESS_BYTES * 3 + UINT256_BYTES,        # factory | nft | duration | token
}


def to_address(value: str) -> str:
    """
    Normalize an address to EIP-55 checksum form.

    Raises:
        ValueError: If value is not a 20-byte hex address
    """
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValueError(f"Invalid address: {value!r}")
    return Web3.to_checksum_address(value)


def address_bytes(value: str) -> bytes:
    """Raw 20 bytes of an address."""
    return bytes.fromhex(to_address(value)[2:])


def bytes_to_address(data: bytes) -> str:
    """Checksum address from 20 raw bytes."""
    return Web3.to_checksum_address("0x" + data.hex())


def short_addr(address: str, visible: int = 10) -> str:
    """Shorten an address for log lines."""
    if not address or len(address) <= visible + 4:
        return address or "-"
    return f"{address[:visible]}...{address[-4:]}"


@dataclass(frozen=True)
class ImmutableArgs:
    """
    Constructor-like parameters baked into a pair clone's bytecode.

    Layout (big-endian, tightly packed):
      - factory:  20 bytes, the creating factory
      - nft:      20 bytes, NFT collection traded by the pair
      - duration: 32 bytes, staking duration in seconds
      - token:    20 bytes, trading token (TOKEN variant only)
    """
    factory: str
    nft: str
    duration: int
    token: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.duration, int) or isinstance(self.duration, bool):
            raise ValueError(f"Duration must be an integer, got {self.duration!r}")
        if not 0 <= self.duration < 2 ** 256:
            raise ValueError(f"Duration out of range: {self.duration}")

    @property
    def variant(self) -> PairVariant:
        return PairVariant.NATIVE if self.token is None else PairVariant.TOKEN

    def pack(self) -> bytes:
        """Pack into the byte layout appended to the clone runtime."""
        data = address_bytes(self.factory) + address_bytes(self.nft) + \
            self.duration.to_bytes(UINT256_BYTES, "big")
        if self.token is not None:
            data += address_bytes(self.token)
        return data

    @classmethod
    def unpack(cls, data: bytes) -> "ImmutableArgs":
        """
        Unpack an argument block.

        Raises:
            ValueError: If the length matches no known variant
        """
        if len(data) not in ARGS_LENGTH.values():
            raise ValueError(f"Unknown immutable args length: {len(data)}")

        factory = bytes_to_address(data[0:20])
        nft = bytes_to_address(data[20:40])
        duration = int.from_bytes(data[40:72], "big")
        token = None
        if len(data) == ARGS_LENGTH[PairVariant.TOKEN]:
            token = bytes_to_address(data[72:92])
        return cls(factory=factory, nft=nft, duration=duration, token=token)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "factory": self.factory,
            "nft": self.nft,
            "duration": self.duration,
            "token": self.token,
            "variant": self.variant.value
        }


@dataclass
class RouterStatus:
    """
    Router whitelist entry.

    was_ever_allowed is sticky: once a router is granted it stays true
    after revocation, which keeps the address out of the call-target list.
    """
    allowed: bool = False
    was_ever_allowed: bool = False

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "was_ever_allowed": self.was_ever_allowed
        }


@dataclass
class LogEntry:
    """Event emitted by a contract, kept for off-chain indexing."""
    address: str
    name: str
    args: dict
    height: int = 0
    timestamp: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        args = {}
        for key, value in self.args.items():
            args[key] = value.value if isinstance(value, Enum) else value
        return {
            "address": self.address,
            "name": self.name,
            "args": args,
            "height": self.height,
            "timestamp": self.timestamp
        }
