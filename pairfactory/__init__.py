"""
Pair Factory SDK

Creates NFT/asset trading pairs as minimal-proxy clones on a serialized
ledger and recognizes them by bytecode fingerprint.

Architecture:
  - Pairs are clones of one template per variant (NATIVE, TOKEN)
  - A clone's immutable args (factory, nft, duration, token) live in its bytecode
  - is_pair compares code length + fingerprint hash, no registry needed
  - Routers and arbitrary call targets are mutually exclusive, forever

Usage:
    from pairfactory import Ledger, PairFactory, PairTemplate, PairVariant

    ledger = Ledger()
    admin = ledger.create_account("admin")
    native = ledger.deploy(admin, PairTemplate(PairVariant.NATIVE))
    token = ledger.deploy(admin, PairTemplate(PairVariant.TOKEN))
    factory = PairFactory.deploy(ledger, admin, native, token, fee_recipient=admin)

    pair = factory.create_pair(admin, PairVariant.NATIVE, nft, admin, 30 * 86400, 7)
    factory.is_pair(pair, PairVariant.NATIVE)  # True
"""

from .pair_types import ImmutableArgs, LogEntry, PairVariant, RouterStatus, ZERO_ADDRESS
from .exceptions import (
    FactoryError,
    ConfigurationError,
    FeeTooLarge,
    ZeroAddress,
    InvariantViolation,
    DeploymentFailed,
    InitializationFailed,
    PermissionDenied,
)
from .ledger import Ledger, LedgerError, Revert, CallContext, view
from .deployer import CloneDeployer
from .access import AccessRegistry, OwnerGate
from .factory import PairFactory, MAX_PROTOCOL_FEE, FEE_SCALE
from .contracts import PairTemplate, ERC20Token, ERC721Collection
from .config import FactoryConfig
from . import fingerprint

__version__ = "0.1.0"
__all__ = [
    # Types
    "ImmutableArgs", "LogEntry", "PairVariant", "RouterStatus", "ZERO_ADDRESS",
    # Errors
    "FactoryError", "ConfigurationError", "FeeTooLarge", "ZeroAddress",
    "InvariantViolation", "DeploymentFailed", "InitializationFailed",
    "PermissionDenied", "LedgerError", "Revert",
    # Core
    "Ledger", "CallContext", "view", "CloneDeployer", "AccessRegistry", "OwnerGate",
    "PairFactory", "MAX_PROTOCOL_FEE", "FEE_SCALE", "fingerprint",
    # Collaborators
    "PairTemplate", "ERC20Token", "ERC721Collection",
    # Config
    "FactoryConfig",
]
