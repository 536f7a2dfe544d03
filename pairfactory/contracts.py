"""
Pair Factory SDK - Reference Contracts

Minimal collaborators the factory talks to: the pair template that clones
delegate to, a fungible token and an NFT collection. Trading, pricing and
staking accrual live elsewhere; these only cover what the factory needs
(initialize, token/nft reads, transfer_from).

All state is kept in ctx.storage so one object can back any number of
deployments.
"""

from typing import Dict, Optional

from .ledger import CallContext, Revert, view
from .pair_types import ZERO_ADDRESS, PairVariant, to_address


# ═══════════════════════════════════════════════════════════════════════════════
# PAIR TEMPLATE
# ═══════════════════════════════════════════════════════════════════════════════

class PairTemplate:
    """
    Shared implementation behind every pair clone of one variant.

    Reads factory, nft, duration and token from the clone's immutable args;
    initialize() sets the mutable part once.
    """

    def __init__(self, variant: PairVariant):
        self.variant = variant

    def _args(self, ctx: CallContext):
        if ctx.args is None:
            raise Revert("Template cannot be called directly")
        return ctx.args

    def initialize(self, ctx: CallContext, owner: str, asset_recipient: str, duration: int):
        """
        One-shot setup, callable only by the creating factory.

        Args:
            owner: Pair owner
            asset_recipient: Where proceeds go (zero address = the pair itself)
            duration: Staking duration, must equal the embedded one
        """
        args = self._args(ctx)
        ctx.require(ctx.sender == args.factory, "Only the factory can initialize")
        ctx.require("owner" not in ctx.storage, "Already initialized")
        ctx.require(owner != ZERO_ADDRESS, "Owner cannot be zero")
        ctx.require(duration == args.duration, "Duration does not match pair")

        ctx.storage["owner"] = to_address(owner)
        ctx.storage["asset_recipient"] = to_address(asset_recipient)
        ctx.storage["lock_until"] = ctx.ledger.timestamp + duration

    @view
    def owner(self, ctx: CallContext) -> Optional[str]:
        self._args(ctx)
        return ctx.storage.get("owner")

    @view
    def asset_recipient(self, ctx: CallContext) -> str:
        recipient = ctx.storage.get("asset_recipient", ZERO_ADDRESS)
        return ctx.this if recipient == ZERO_ADDRESS else recipient

    @view
    def lock_until(self, ctx: CallContext) -> int:
        return ctx.storage.get("lock_until", 0)

    @view
    def factory(self, ctx: CallContext) -> str:
        return self._args(ctx).factory

    @view
    def nft(self, ctx: CallContext) -> str:
        return self._args(ctx).nft

    @view
    def duration(self, ctx: CallContext) -> int:
        return self._args(ctx).duration

    @view
    def token(self, ctx: CallContext) -> Optional[str]:
        """Trading token, None for NATIVE pairs."""
        return self._args(ctx).token

    @view
    def pair_variant(self, ctx: CallContext) -> PairVariant:
        return self._args(ctx).variant

    # Factory-wide settings, read through the factory at call time

    @view
    def protocol_fee_multiplier(self, ctx: CallContext) -> int:
        return ctx.call(self._args(ctx).factory, "protocol_fee_multiplier")

    @view
    def can_call(self, ctx: CallContext, target: str) -> bool:
        """Whether the factory currently allows arbitrary calls to target."""
        return ctx.call(self._args(ctx).factory, "call_allowed", target)


# ═══════════════════════════════════════════════════════════════════════════════
# FUNGIBLE TOKEN
# ═══════════════════════════════════════════════════════════════════════════════

class ERC20Token:
    """Fungible token; the deployer is the only minter."""

    def __init__(self, name: str, symbol: str, decimals: int = 18):
        self.name = name
        self.symbol = symbol
        self.decimals = decimals

    def constructor(self, ctx: CallContext):
        ctx.storage["minter"] = ctx.sender
        ctx.storage["balances"] = {}
        ctx.storage["allowances"] = {}

    def _move(self, ctx: CallContext, owner: str, to: str, amount: int):
        ctx.require(amount >= 0, "Negative amount")
        ctx.require(to != ZERO_ADDRESS, "Transfer to zero address")
        balances: Dict[str, int] = ctx.storage["balances"]
        ctx.require(balances.get(owner, 0) >= amount, "Transfer amount exceeds balance")
        balances[owner] = balances.get(owner, 0) - amount
        balances[to] = balances.get(to, 0) + amount
        ctx.emit("Transfer", sender=owner, to=to, amount=amount)

    def mint(self, ctx: CallContext, to: str, amount: int):
        ctx.require(ctx.sender == ctx.storage["minter"], "Caller is not the minter")
        ctx.require(amount > 0, "Mint amount must be positive")
        balances = ctx.storage["balances"]
        to = to_address(to)
        balances[to] = balances.get(to, 0) + amount

    @view
    def balance_of(self, ctx: CallContext, account: str) -> int:
        return ctx.storage["balances"].get(to_address(account), 0)

    @view
    def allowance(self, ctx: CallContext, owner: str, spender: str) -> int:
        return ctx.storage["allowances"].get(f"{to_address(owner)}:{to_address(spender)}", 0)

    def approve(self, ctx: CallContext, spender: str, amount: int) -> bool:
        ctx.require(amount >= 0, "Negative allowance")
        ctx.storage["allowances"][f"{ctx.sender}:{to_address(spender)}"] = amount
        return True

    def transfer(self, ctx: CallContext, to: str, amount: int) -> bool:
        self._move(ctx, ctx.sender, to_address(to), amount)
        return True

    def transfer_from(self, ctx: CallContext, owner: str, to: str, amount: int) -> bool:
        owner = to_address(owner)
        if ctx.sender != owner:
            key = f"{owner}:{ctx.sender}"
            allowed = ctx.storage["allowances"].get(key, 0)
            ctx.require(allowed >= amount, "Insufficient allowance")
            ctx.storage["allowances"][key] = allowed - amount
        self._move(ctx, owner, to_address(to), amount)
        return True


# ═══════════════════════════════════════════════════════════════════════════════
# NFT COLLECTION
# ═══════════════════════════════════════════════════════════════════════════════

class ERC721Collection:
    """Non-fungible collection; the deployer is the only minter."""

    def __init__(self, name: str, symbol: str):
        self.name = name
        self.symbol = symbol

    def constructor(self, ctx: CallContext):
        ctx.storage["minter"] = ctx.sender
        ctx.storage["owners"] = {}
        ctx.storage["approvals"] = {}
        ctx.storage["operators"] = {}

    def mint(self, ctx: CallContext, to: str, token_id: int):
        ctx.require(ctx.sender == ctx.storage["minter"], "Caller is not the minter")
        ctx.require(token_id not in ctx.storage["owners"], "Token already minted")
        ctx.storage["owners"][token_id] = to_address(to)

    @view
    def owner_of(self, ctx: CallContext, token_id: int) -> str:
        owner = ctx.storage["owners"].get(token_id)
        ctx.require(owner is not None, f"Token {token_id} does not exist")
        return owner

    def approve(self, ctx: CallContext, operator: str, token_id: int):
        ctx.require(self.owner_of(ctx, token_id) == ctx.sender, "Caller is not the token owner")
        ctx.storage["approvals"][token_id] = to_address(operator)

    def set_approval_for_all(self, ctx: CallContext, operator: str, approved: bool):
        ctx.storage["operators"][f"{ctx.sender}:{to_address(operator)}"] = bool(approved)

    @view
    def is_approved_for_all(self, ctx: CallContext, owner: str, operator: str) -> bool:
        return ctx.storage["operators"].get(f"{to_address(owner)}:{to_address(operator)}", False)

    def transfer_from(self, ctx: CallContext, owner: str, to: str, token_id: int):
        owner = to_address(owner)
        to = to_address(to)
        ctx.require(self.owner_of(ctx, token_id) == owner, "Transfer of token not owned by owner")
        ctx.require(to != ZERO_ADDRESS, "Transfer to zero address")
        ctx.require(
            ctx.sender == owner
            or ctx.storage["approvals"].get(token_id) == ctx.sender
            or self.is_approved_for_all(ctx, owner, ctx.sender),
            "Caller is not owner nor approved"
        )
        ctx.storage["approvals"].pop(token_id, None)
        ctx.storage["owners"][token_id] = to
        ctx.emit("Transfer", sender=owner, to=to, token_id=token_id)
