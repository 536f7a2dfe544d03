"""
Pair Factory SDK - Clone Deployer

Salted deterministic deployment (CREATE2 scheme) of pair clones whose
runtime bytecode comes from the fingerprint codec.
"""

import logging

from web3 import Web3

from . import fingerprint
from .exceptions import DeploymentFailed
from .ledger import Ledger, LedgerError
from .pair_types import address_bytes, bytes_to_address, short_addr

log = logging.getLogger(__name__)

SALT_BYTES = 32


class CloneDeployer:
    """
    Deploys minimal-proxy clones at addresses known in advance.

    Usage:
        deployer = CloneDeployer(ledger)
        salt = Web3.keccak(text="pair-0")
        expected = deployer.predict(factory, template, args, salt)
        pair = deployer.deploy(factory, template, args, salt)
        assert pair == expected
    """

    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    @staticmethod
    def predict_address(deployer: str, salt: bytes, init_code: bytes) -> str:
        """
        CREATE2 address: keccak256(0xff | deployer | salt | keccak256(init_code))[12:]
        """
        if len(salt) != SALT_BYTES:
            raise ValueError(f"Salt must be {SALT_BYTES} bytes, got {len(salt)}")
        digest = Web3.keccak(b"\xff" + address_bytes(deployer) + bytes(salt) +
                             bytes(Web3.keccak(init_code)))
        return bytes_to_address(bytes(digest)[12:])

    def predict(self, deployer: str, template: str, args: bytes, salt: bytes) -> str:
        """Address a clone of template with args would get."""
        runtime = fingerprint.encode(template, args)
        return self.predict_address(deployer, salt, fingerprint.creation_code(runtime))

    def deploy(self, deployer: str, template: str, args: bytes, salt: bytes) -> str:
        """
        Deploy a clone.

        Args:
            deployer: Account performing the deployment (the factory)
            template: Implementation the clone delegates to
            args: Packed immutable argument block
            salt: 32-byte salt

        Returns:
            Address of the new clone

        Raises:
            DeploymentFailed: Bad salt or template, or the derived address is taken
        """
        try:
            runtime = fingerprint.encode(template, args)
            address = self.predict_address(deployer, salt, fingerprint.creation_code(runtime))
        except ValueError as e:
            raise DeploymentFailed(f"Cannot build clone: {e}") from e

        try:
            self.ledger.install_code(address, runtime)
        except LedgerError as e:
            log.warning(f"Clone deployment collided at {short_addr(address)}")
            raise DeploymentFailed(f"Clone address {address} is already in use") from e

        log.debug(f"Clone of {short_addr(template)} deployed at {address} ({len(runtime)} bytes)")
        return address
