"""
Pair Factory SDK - Access Control

Owner gate and the router / call-target whitelist.

The whitelist keeps both maps behind guarded setters. Invariant: no
address is ever an allowed call target while its router entry has
was_ever_allowed set. Each grant checks the other map and writes within
one ledger transaction.

State machine per address:
    unset --set_call_allowed(True)--> call target
    unset --set_router_allowed(True)--> router
    router --set_router_allowed(False)--> revoked router (sticky, never a call target)
"""

import logging
from typing import Dict

from .exceptions import InvariantViolation, PermissionDenied, ZeroAddress
from .ledger import Ledger
from .pair_types import ZERO_ADDRESS, RouterStatus, short_addr, to_address

log = logging.getLogger(__name__)


class OwnerGate:
    """Single-owner permission gate stored in the contract's storage."""

    KEY = "owner"

    def __init__(self, ledger: Ledger, address: str):
        self.ledger = ledger
        self.address = address

    def owner(self) -> str:
        with self.ledger.read():
            return self.ledger.storage(self.address).get(self.KEY, ZERO_ADDRESS)

    def require(self, sender: str, operation: str):
        """
        Raises:
            PermissionDenied: If sender is not the owner
        """
        if to_address(sender) != self.owner():
            log.warning(f"Rejected {operation} from non-owner {short_addr(sender)}")
            raise PermissionDenied(sender, operation)

    def transfer(self, sender: str, new_owner: str):
        """Hand ownership to new_owner."""
        with self.ledger.transaction():
            self.require(sender, "transfer_ownership")
            new_owner = to_address(new_owner)
            if new_owner == ZERO_ADDRESS:
                raise ZeroAddress("new_owner")
            previous = self.owner()
            self.ledger.storage(self.address)[self.KEY] = new_owner
            self.ledger.emit(self.address, "OwnershipTransferred",
                             previous_owner=previous, new_owner=new_owner)
        log.info(f"Ownership transferred {short_addr(previous)} -> {short_addr(new_owner)}")


class AccessRegistry:
    """
    Router and call-target whitelist.

    Callers gate on ownership first; this class only enforces the
    mutual-exclusion rule and records events.
    """

    CALL_TARGETS = "call_targets"
    ROUTERS = "routers"

    def __init__(self, ledger: Ledger, address: str):
        self.ledger = ledger
        self.address = address

    def _call_targets(self) -> Dict[str, bool]:
        return self.ledger.storage(self.address).setdefault(self.CALL_TARGETS, {})

    def _routers(self) -> Dict[str, RouterStatus]:
        return self.ledger.storage(self.address).setdefault(self.ROUTERS, {})

    # Queries never mutate storage, so unknown addresses are not written

    def call_allowed(self, target: str) -> bool:
        target = to_address(target)
        with self.ledger.read():
            return self.ledger.storage(self.address).get(self.CALL_TARGETS, {}).get(target, False)

    def router_status(self, router: str) -> RouterStatus:
        router = to_address(router)
        with self.ledger.read():
            status = self.ledger.storage(self.address).get(self.ROUTERS, {}).get(router)
        if status is None:
            return RouterStatus()
        return RouterStatus(allowed=status.allowed, was_ever_allowed=status.was_ever_allowed)

    def set_call_allowed(self, target: str, allowed: bool):
        """
        Allow or forbid arbitrary calls from pairs to target.

        Raises:
            ZeroAddress: If target is the zero address
            InvariantViolation: Granting a target that was ever a router
        """
        target = to_address(target)
        if target == ZERO_ADDRESS:
            raise ZeroAddress("target")

        with self.ledger.transaction():
            if allowed:
                status = self._routers().get(target)
                if status is not None and status.was_ever_allowed:
                    log.warning(f"Refused call target {short_addr(target)}: was a router")
                    raise InvariantViolation(f"{target} was a router and cannot be a call target")
            self._call_targets()[target] = bool(allowed)
            self.ledger.emit(self.address, "CallTargetStatusUpdate",
                             target=target, is_allowed=bool(allowed))

        log.info(f"Call target {short_addr(target)} allowed={bool(allowed)}")

    def set_router_allowed(self, router: str, allowed: bool):
        """
        Grant or revoke router status.

        Revocation keeps was_ever_allowed set.

        Raises:
            ZeroAddress: If router is the zero address
            InvariantViolation: Granting a router that is an allowed call target
        """
        router = to_address(router)
        if router == ZERO_ADDRESS:
            raise ZeroAddress("router")

        with self.ledger.transaction():
            routers = self._routers()
            status = routers.get(router) or RouterStatus()
            if allowed:
                if self._call_targets().get(router, False):
                    log.warning(f"Refused router {short_addr(router)}: allowed call target")
                    raise InvariantViolation(f"{router} is a call target and cannot be a router")
                status = RouterStatus(allowed=True, was_ever_allowed=True)
            else:
                status = RouterStatus(allowed=False, was_ever_allowed=status.was_ever_allowed)
            routers[router] = status
            self.ledger.emit(self.address, "RouterStatusUpdate",
                             router=router, is_allowed=bool(allowed))

        log.info(f"Router {short_addr(router)} allowed={bool(allowed)}")
