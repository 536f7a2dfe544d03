"""
Pair Factory SDK - Fingerprint Codec

Deterministic bytecode of a pair clone and the membership test built on it.

Clone runtime layout (EIP-1167 minimal proxy with an appended argument block):

    363d3d373d3d3d363d73 | template (20) | 5af43d82803e903d91602b57fd5bf3
    | immutable args | uint16 length of args

A clone is recognized by its exact length for the claimed variant plus the
keccak of its fingerprint prefix, which covers the proxy body, the template
and the factory address (the first field of the argument block). The rest
of the argument block varies per pair and is not part of the fingerprint.
"""

from typing import Optional, Tuple

from web3 import Web3

from .pair_types import (
    ADDRESS_BYTES,
    ARGS_LENGTH,
    PairVariant,
    address_bytes,
    bytes_to_address,
)

# ═══════════════════════════════════════════════════════════════════════════════
# MINIMAL PROXY BYTECODE
# ═══════════════════════════════════════════════════════════════════════════════

PROXY_PREFIX = bytes.fromhex("363d3d373d3d3d363d73")
PROXY_SUFFIX = bytes.fromhex("5af43d82803e903d91602b57fd5bf3")
PROXY_LENGTH = len(PROXY_PREFIX) + ADDRESS_BYTES + len(PROXY_SUFFIX)   # 45 bytes
ARGS_LENGTH_BYTES = 2

# Init code header: PUSH2 <len> DUP1 PUSH1 0x0a RETURNDATASIZE CODECOPY DUP2 RETURN
CREATION_HEADER_LENGTH = 10

FINGERPRINT_LENGTH = PROXY_LENGTH + ADDRESS_BYTES


def encode(template: str, args: bytes) -> bytes:
    """
    Build the runtime bytecode of a clone.

    Args:
        template: Implementation address every call is delegated to
        args: Packed immutable argument block

    Returns:
        Runtime bytecode

    Raises:
        ValueError: If template is not an address or args do not fit a uint16 length
    """
    if len(args) >= 2 ** 16:
        raise ValueError(f"Immutable args too long: {len(args)} bytes")
    return PROXY_PREFIX + address_bytes(template) + PROXY_SUFFIX + args + \
        len(args).to_bytes(ARGS_LENGTH_BYTES, "big")


def creation_code(runtime: bytes) -> bytes:
    """Init code that returns the given runtime when executed."""
    if len(runtime) >= 2 ** 16:
        raise ValueError(f"Runtime too long: {len(runtime)} bytes")
    header = b"\x61" + len(runtime).to_bytes(2, "big") + bytes.fromhex("80600a3d3981f3")
    return header + runtime


def decode(code: bytes) -> Optional[Tuple[str, bytes]]:
    """
    Recover (template, args) from clone bytecode.

    Returns:
        (template, args), or None if code is not a well-formed clone
    """
    if len(code) < PROXY_LENGTH + ARGS_LENGTH_BYTES:
        return None
    if not code.startswith(PROXY_PREFIX):
        return None
    suffix_start = len(PROXY_PREFIX) + ADDRESS_BYTES
    if code[suffix_start:PROXY_LENGTH] != PROXY_SUFFIX:
        return None

    args_len = int.from_bytes(code[-ARGS_LENGTH_BYTES:], "big")
    if PROXY_LENGTH + args_len + ARGS_LENGTH_BYTES != len(code):
        return None

    template = bytes_to_address(code[len(PROXY_PREFIX):suffix_start])
    return template, code[PROXY_LENGTH:-ARGS_LENGTH_BYTES]


def expected_length(variant: PairVariant) -> int:
    """Total runtime length of a clone of the given variant."""
    return PROXY_LENGTH + ARGS_LENGTH[variant] + ARGS_LENGTH_BYTES


def fingerprint_prefix(factory: str, template: str) -> bytes:
    """Leading bytes shared by every clone a factory makes from a template."""
    return PROXY_PREFIX + address_bytes(template) + PROXY_SUFFIX + address_bytes(factory)


def fingerprint_hash(factory: str, template: str) -> bytes:
    """keccak256 of the fingerprint prefix."""
    return bytes(Web3.keccak(fingerprint_prefix(factory, template)))


def matches(ledger, candidate: str, factory: str, template: str,
            variant: PairVariant) -> bool:
    """
    Check whether candidate is a clone of template created by factory.

    Total over its inputs: unknown accounts, wrong-length code and a
    malformed candidate, factory or template all return False.

    Args:
        ledger: Ledger to read candidate's code from
        candidate: Address under test
        factory: Factory expected to be embedded in the args
        template: Template expected in the proxy body
        variant: Claimed variant (fixes the expected code length)

    Returns:
        True if candidate's bytecode carries the fingerprint
    """
    if not isinstance(candidate, str) or not Web3.is_address(candidate):
        return False

    variant = PairVariant.parse(variant)
    if variant is None:
        return False

    code = ledger.get_code(candidate)
    if len(code) != expected_length(variant):
        return False

    try:
        expected = fingerprint_hash(factory, template)
    except ValueError:
        return False
    return bytes(Web3.keccak(code[:FINGERPRINT_LENGTH])) == expected
