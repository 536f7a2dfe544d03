"""
Pair Factory SDK - Factory

Creates NFT/asset pairs as minimal-proxy clones, recognizes its own pairs
by bytecode fingerprint, manages protocol fees and the router/call-target
whitelist, and emits indexing events for deposits into genuine pairs.
"""

import logging
from typing import Dict, Iterable, List, Optional

from web3 import Web3

from . import fingerprint
from .access import AccessRegistry, OwnerGate
from .deployer import CloneDeployer
from .exceptions import ConfigurationError, FeeTooLarge, InitializationFailed, ZeroAddress
from .ledger import CallContext, Ledger, view
from .pair_types import (
    ZERO_ADDRESS,
    ImmutableArgs,
    PairVariant,
    RouterStatus,
    address_bytes,
    short_addr,
    to_address,
)

log = logging.getLogger(__name__)

FEE_SCALE = 10 ** 18
MAX_PROTOCOL_FEE = 10 ** 17  # 10%


class FactoryViews:
    """
    On-ledger read surface of the factory.

    Deployed at the factory address so pairs and other contracts can read
    fee settings and whitelist state through ledger calls.
    """

    @view
    def protocol_fee_multiplier(self, ctx: CallContext) -> int:
        return ctx.storage["fee_multiplier"]

    @view
    def protocol_fee_recipient(self, ctx: CallContext) -> str:
        return ctx.storage["fee_recipient"]

    @view
    def call_allowed(self, ctx: CallContext, target: str) -> bool:
        return AccessRegistry(ctx.ledger, ctx.this).call_allowed(target)

    @view
    def router_status(self, ctx: CallContext, router: str) -> RouterStatus:
        return AccessRegistry(ctx.ledger, ctx.this).router_status(router)

    @view
    def is_pair(self, ctx: CallContext, candidate: str, variant) -> bool:
        return PairFactory(ctx.ledger, ctx.this).is_pair(candidate, variant)


class PairFactory:
    """
    Pair factory bound to a ledger deployment.

    All state lives in the factory's ledger storage; every mutating call
    runs in one ledger transaction and rolls back entirely on failure.

    Usage:
        factory = PairFactory.deploy(ledger, admin, native_template, token_template,
                                     fee_recipient=admin, fee_multiplier=5 * 10 ** 15)

        pair = factory.create_pair(alice, PairVariant.NATIVE, nft, alice,
                                   duration=30 * 86400, initial_nft_id=7)
        factory.is_pair(pair, PairVariant.NATIVE)   # True
    """

    def __init__(self, ledger: Ledger, address: str):
        """
        Bind to an existing factory deployment.

        Args:
            ledger: Ledger holding the factory
            address: Factory address
        """
        self.ledger = ledger
        self.address = to_address(address)
        self.owner_gate = OwnerGate(ledger, self.address)
        self.access = AccessRegistry(ledger, self.address)
        self.deployer = CloneDeployer(ledger)

    @classmethod
    def deploy(cls, ledger: Ledger, deployer: str, native_template: str,
               token_template: str, fee_recipient: str,
               fee_multiplier: int = 0) -> "PairFactory":
        """
        Deploy a new factory owned by deployer.

        Args:
            ledger: Target ledger
            deployer: Deploying account, becomes owner
            native_template: Template for NATIVE pairs
            token_template: Template for TOKEN pairs
            fee_recipient: Initial protocol fee recipient
            fee_multiplier: Initial fee (1e18 scale)

        Raises:
            ZeroAddress: A template or the fee recipient is the zero address
            FeeTooLarge: fee_multiplier above MAX_PROTOCOL_FEE
        """
        templates = {
            PairVariant.NATIVE.value: to_address(native_template),
            PairVariant.TOKEN.value: to_address(token_template),
        }
        for tag, template in templates.items():
            if template == ZERO_ADDRESS:
                raise ZeroAddress(f"{tag} template")
        fee_recipient = to_address(fee_recipient)
        if fee_recipient == ZERO_ADDRESS:
            raise ZeroAddress("fee_recipient")
        _check_fee(fee_multiplier)

        with ledger.transaction():
            address = ledger.deploy(deployer, FactoryViews())
            ledger.storage(address).update({
                OwnerGate.KEY: to_address(deployer),
                "templates": templates,
                "fee_recipient": fee_recipient,
                "fee_multiplier": fee_multiplier,
                "nonce": 0,
            })

        log.info(f"Factory deployed at {address} (owner {short_addr(deployer)})")
        return cls(ledger, address)

    # ═══════════════════════════════════════════════════════════════════════
    # STATE
    # ═══════════════════════════════════════════════════════════════════════

    def _store(self) -> dict:
        return self.ledger.storage(self.address)

    def _get(self, key: str):
        with self.ledger.read():
            return self._store()[key]

    @property
    def owner(self) -> str:
        return self.owner_gate.owner()

    @property
    def fee_recipient(self) -> str:
        return self._get("fee_recipient")

    @property
    def fee_multiplier(self) -> int:
        return self._get("fee_multiplier")

    @property
    def pair_count(self) -> int:
        """Pairs created so far (also the next salt nonce)."""
        return self._get("nonce")

    def template(self, variant: PairVariant) -> str:
        return self._get("templates")[variant.value]

    @property
    def templates(self) -> Dict[str, str]:
        return dict(self._get("templates"))

    def status(self) -> dict:
        """Snapshot of factory state for reporting."""
        with self.ledger.read():
            return {
                "address": self.address,
                "owner": self.owner,
                "fee_recipient": self.fee_recipient,
                "fee_multiplier": self.fee_multiplier,
                "max_protocol_fee": MAX_PROTOCOL_FEE,
                "templates": self.templates,
                "pair_count": self.pair_count,
                "native_balance": self.ledger.balance_of(self.address),
                "height": self.ledger.height
            }

    # ═══════════════════════════════════════════════════════════════════════
    # PAIR CREATION & RECOGNITION
    # ═══════════════════════════════════════════════════════════════════════

    def predict_pair_address(self, variant, nft: str, duration: int,
                             token: Optional[str] = None) -> str:
        """Address the next create_pair call with these parameters will deploy to."""
        args = build_args(self.address, variant, nft, duration, token)
        with self.ledger.read():
            return self.deployer.predict(self.address, self.template(args.variant),
                                         args.pack(), pair_salt(self.address, self.pair_count))

    def create_pair(self, sender: str, variant, nft: str, asset_recipient: str,
                    duration: int, initial_nft_id: int, token: Optional[str] = None) -> str:
        """
        Create, initialize and seed a new pair.

        sender must have approved the factory to move initial_nft_id.

        Args:
            sender: Caller, becomes pair owner
            variant: PairVariant (or its tag)
            nft: NFT collection traded by the pair
            asset_recipient: Where the pair sends proceeds (zero = pair itself)
            duration: Staking duration in seconds
            initial_nft_id: NFT moved from sender into the pair
            token: Trading token (TOKEN variant only)

        Returns:
            Pair address

        Raises:
            ConfigurationError: Unknown variant or token mismatch with variant
            DeploymentFailed: Clone could not be deployed
            InitializationFailed: initialize or NFT transfer failed
        """
        sender = to_address(sender)
        asset_recipient = to_address(asset_recipient)
        args = build_args(self.address, variant, nft, duration, token)

        with self.ledger.transaction():
            store = self._store()
            nonce = store["nonce"]
            store["nonce"] = nonce + 1

            pair = self.deployer.deploy(self.address, self.template(args.variant),
                                        args.pack(), pair_salt(self.address, nonce))
            try:
                self.ledger.call(self.address, pair, "initialize",
                                 sender, asset_recipient, duration)
                self.ledger.call(self.address, args.nft, "transfer_from",
                                 sender, pair, initial_nft_id)
            except Exception as e:
                log.warning(f"Pair setup failed for {short_addr(pair)}: {e}")
                raise InitializationFailed(f"Pair {pair} setup failed: {e}") from e

            self.ledger.emit(self.address, "NewPair", pair=pair, variant=args.variant)

        log.info(f"Pair created: {pair} {args.variant.value} nft={short_addr(args.nft)} "
                 f"owner={short_addr(sender)}")
        return pair

    def is_pair(self, candidate: str, variant) -> bool:
        """
        Check whether candidate is a pair of the given variant made by this factory.

        Returns False (never raises) for unknown variants and foreign addresses.
        """
        pair_variant = PairVariant.parse(variant)
        if pair_variant is None:
            return False
        with self.ledger.read():
            return fingerprint.matches(self.ledger, candidate, self.address,
                                       self.template(pair_variant), pair_variant)

    def pair_variant(self, candidate: str) -> Optional[PairVariant]:
        """Variant of candidate, or None if it is not one of our pairs."""
        with self.ledger.read():
            for variant in PairVariant:
                if self.is_pair(candidate, variant):
                    return variant
        return None

    # ═══════════════════════════════════════════════════════════════════════
    # DEPOSITS
    # ═══════════════════════════════════════════════════════════════════════

    def deposit_nft(self, sender: str, nft: str, nft_id: int, recipient: str) -> bool:
        """Move one NFT from sender to recipient. Returns True if NFTDeposit was emitted."""
        return 1 == self.deposit_nfts(sender, nft, [nft_id], recipient)

    def deposit_nfts(self, sender: str, nft: str, nft_ids: Iterable[int], recipient: str) -> int:
        """
        Move NFTs from sender to recipient.

        NFTDeposit is emitted per id only when recipient is one of our pairs;
        other recipients still receive the NFTs.

        Returns:
            Number of NFTDeposit events emitted
        """
        recipient = to_address(recipient)
        nft_ids = list(nft_ids)
        with self.ledger.transaction():
            for nft_id in nft_ids:
                self.ledger.call(self.address, nft, "transfer_from", sender, recipient, nft_id)

            if self.pair_variant(recipient) is None:
                return 0
            for nft_id in nft_ids:
                self.ledger.emit(self.address, "NFTDeposit", recipient=recipient, nft_id=nft_id)
        return len(nft_ids)

    def deposit_token(self, sender: str, token: str, recipient: str, amount: int) -> bool:
        """
        Move token from sender to recipient.

        TokenDeposit is emitted only when recipient is one of our pairs and
        trades that token; foreign-token deposits go through silently.

        Returns:
            True if TokenDeposit was emitted
        """
        token = to_address(token)
        recipient = to_address(recipient)
        with self.ledger.transaction():
            self.ledger.call(self.address, token, "transfer_from", sender, recipient, amount)

            if self.pair_variant(recipient) is None:
                return False
            if self.ledger.call(self.address, recipient, "token") != token:
                return False
            self.ledger.emit(self.address, "TokenDeposit", recipient=recipient, amount=amount)
        return True

    def receive(self, sender: str, value: int):
        """Accept native funds (protocol fees); no other effect."""
        with self.ledger.transaction():
            self.ledger.transfer_native(sender, self.address, value)

    # ═══════════════════════════════════════════════════════════════════════
    # ADMINISTRATION (owner only)
    # ═══════════════════════════════════════════════════════════════════════

    def change_fee_recipient(self, sender: str, new_recipient: str):
        """
        Raises:
            PermissionDenied: sender is not the owner
            ZeroAddress: new_recipient is the zero address
        """
        with self.ledger.transaction():
            self.owner_gate.require(sender, "change_fee_recipient")
            new_recipient = to_address(new_recipient)
            if new_recipient == ZERO_ADDRESS:
                raise ZeroAddress("fee_recipient")
            self._store()["fee_recipient"] = new_recipient
            self.ledger.emit(self.address, "ProtocolFeeRecipientUpdate", recipient=new_recipient)
        log.info(f"Fee recipient -> {new_recipient}")

    def change_fee_multiplier(self, sender: str, new_multiplier: int):
        """
        Raises:
            PermissionDenied: sender is not the owner
            FeeTooLarge: new_multiplier above MAX_PROTOCOL_FEE
        """
        with self.ledger.transaction():
            self.owner_gate.require(sender, "change_fee_multiplier")
            _check_fee(new_multiplier)
            self._store()["fee_multiplier"] = new_multiplier
            self.ledger.emit(self.address, "ProtocolFeeMultiplierUpdate", multiplier=new_multiplier)
        log.info(f"Fee multiplier -> {new_multiplier} ({new_multiplier * 100 / FEE_SCALE:.2f}%)")

    def set_call_allowed(self, sender: str, target: str, allowed: bool):
        with self.ledger.transaction():
            self.owner_gate.require(sender, "set_call_allowed")
            self.access.set_call_allowed(target, allowed)

    def set_router_allowed(self, sender: str, router: str, allowed: bool):
        with self.ledger.transaction():
            self.owner_gate.require(sender, "set_router_allowed")
            self.access.set_router_allowed(router, allowed)

    def call_allowed(self, target: str) -> bool:
        return self.access.call_allowed(target)

    def router_status(self, router: str) -> RouterStatus:
        return self.access.router_status(router)

    def withdraw_native_fees(self, sender: str) -> int:
        """
        Send the factory's whole native balance to the fee recipient.

        Returns:
            Amount withdrawn
        """
        with self.ledger.transaction():
            self.owner_gate.require(sender, "withdraw_native_fees")
            amount = self.ledger.balance_of(self.address)
            self.ledger.transfer_native(self.address, self.fee_recipient, amount)
        log.info(f"Withdrew {amount} native to {short_addr(self.fee_recipient)}")
        return amount

    def withdraw_token_fees(self, sender: str, token: str, amount: int):
        """Send amount of token held by the factory to the fee recipient."""
        with self.ledger.transaction():
            self.owner_gate.require(sender, "withdraw_token_fees")
            self.ledger.call(self.address, token, "transfer", self.fee_recipient, amount)
        log.info(f"Withdrew {amount} of {short_addr(token)} to {short_addr(self.fee_recipient)}")

    def transfer_ownership(self, sender: str, new_owner: str):
        self.owner_gate.transfer(sender, new_owner)

    def events(self, name: str = "") -> List[dict]:
        """Factory events as dictionaries, oldest first."""
        return [entry.to_dict() for entry in self.ledger.get_logs(name=name, address=self.address)]


def pair_salt(factory: str, nonce: int) -> bytes:
    """CREATE2 salt of the factory's nonce-th pair: keccak256(factory | nonce)."""
    return bytes(Web3.keccak(address_bytes(factory) + nonce.to_bytes(32, "big")))


def build_args(factory: str, variant, nft: str, duration: int,
               token: Optional[str] = None) -> ImmutableArgs:
    """
    Validate creation parameters into the immutable argument block.

    Raises:
        ConfigurationError: Unknown variant, token given for NATIVE or
            missing for TOKEN, duration out of range
        ZeroAddress: nft or token is the zero address
    """
    pair_variant = PairVariant.parse(variant)
    if pair_variant is None:
        raise ConfigurationError(f"Unknown pair variant: {variant}")

    nft = to_address(nft)
    if nft == ZERO_ADDRESS:
        raise ZeroAddress("nft")

    if pair_variant == PairVariant.TOKEN:
        if token is None:
            raise ConfigurationError("TOKEN pairs need a trading token")
        token = to_address(token)
        if token == ZERO_ADDRESS:
            raise ZeroAddress("token")
    elif token is not None:
        raise ConfigurationError("NATIVE pairs do not take a trading token")

    try:
        return ImmutableArgs(factory=to_address(factory), nft=nft, duration=duration, token=token)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def _check_fee(multiplier: int):
    if not isinstance(multiplier, int) or isinstance(multiplier, bool):
        raise ConfigurationError(f"Fee multiplier must be an integer, got {multiplier!r}")
    if multiplier < 0:
        raise ConfigurationError(f"Fee multiplier cannot be negative: {multiplier}")
    if multiplier > MAX_PROTOCOL_FEE:
        raise FeeTooLarge(multiplier, MAX_PROTOCOL_FEE)
