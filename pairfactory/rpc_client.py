"""
Pair Factory SDK - API Client

HTTP client for the factory REST API (see server.py).
"""

from typing import Any, List, Optional

import requests


class FactoryAPIError(Exception):
    """API call failed."""
    def __init__(self, status: int, message: str, kind: str = ""):
        self.status = status
        self.message = message
        self.kind = kind
        super().__init__(f"API Error {status}: {message}")


class FactoryClient:
    """
    Client for a running factory server.

    Usage:
        client = FactoryClient("http://localhost:8080")
        pair = client.create_pair(sender, "native", nft, sender, 30 * 86400, 7)
        client.is_pair(pair, "native")
    """

    def __init__(self, base_url: str = "http://localhost:8080", timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def _request(self, method: str, path: str, payload: Optional[dict] = None,
                 params: Optional[dict] = None) -> Any:
        """Make API call."""
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                params=params,
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise FactoryAPIError(-1, f"Connection failed: {e}")

        try:
            result = response.json()
        except ValueError:
            result = {}

        if response.status_code >= 400:
            message = result.get("error") or response.text or response.reason
            raise FactoryAPIError(response.status_code, message, result.get("kind", ""))

        return result

    def _get(self, path: str, **params) -> Any:
        return self._request("GET", path, params=params or None)

    def _post(self, path: str, payload: dict) -> Any:
        return self._request("POST", path, payload=payload)

    # ═══════════════════════════════════════════════════════════════════════
    # STATUS
    # ═══════════════════════════════════════════════════════════════════════

    def health(self) -> dict:
        return self._get("/health")

    def status(self) -> dict:
        """Factory state: owner, fee settings, templates, pair count."""
        return self._get("/api/status")

    def test_connection(self) -> bool:
        """Test if the server answers."""
        try:
            return bool(self.health().get("ok"))
        except FactoryAPIError:
            return False

    # ═══════════════════════════════════════════════════════════════════════
    # PAIRS & DEPOSITS
    # ═══════════════════════════════════════════════════════════════════════

    def create_pair(self, sender: str, variant: str, nft: str, asset_recipient: str,
                    duration: int, initial_nft_id: int, token: str = "") -> str:
        """
        Create a pair.

        Returns:
            New pair address
        """
        payload = {
            "sender": sender,
            "variant": variant,
            "nft": nft,
            "asset_recipient": asset_recipient,
            "duration": duration,
            "initial_nft_id": initial_nft_id
        }
        if token:
            payload["token"] = token
        return self._post("/api/pairs/create", payload)["pair"]

    def is_pair(self, address: str, variant: str = "") -> bool:
        """Is-pair check; any variant when variant is empty."""
        if variant:
            return self._get(f"/api/pairs/{address}", variant=variant)["is_pair"]
        return self._get(f"/api/pairs/{address}")["is_pair"]

    def predict_pair_address(self, variant: str, nft: str, duration: int, token: str = "") -> str:
        """Address the next create_pair with these parameters would get."""
        params = {"variant": variant, "nft": nft, "duration": duration}
        if token:
            params["token"] = token
        return self._get("/api/pairs/predict", **params)["pair"]

    def pair_variant(self, address: str) -> Optional[str]:
        return self._get(f"/api/pairs/{address}")["variant"]

    def deposit_nfts(self, sender: str, nft: str, nft_ids: List[int], recipient: str) -> int:
        """
        Returns:
            Number of NFTDeposit events emitted
        """
        result = self._post("/api/deposit/nft", {
            "sender": sender, "nft": nft, "nft_ids": list(nft_ids), "recipient": recipient
        })
        return result["events"]

    def deposit_token(self, sender: str, token: str, recipient: str, amount: int) -> bool:
        result = self._post("/api/deposit/token", {
            "sender": sender, "token": token, "recipient": recipient, "amount": amount
        })
        return result["event_emitted"]

    def send_native(self, sender: str, value: int) -> int:
        """Send native funds to the factory; returns its new balance."""
        return self._post("/api/receive", {"sender": sender, "value": value})["balance"]

    # ═══════════════════════════════════════════════════════════════════════
    # ADMIN
    # ═══════════════════════════════════════════════════════════════════════

    def change_fee_recipient(self, sender: str, recipient: str) -> str:
        return self._post("/api/admin/fee_recipient",
                          {"sender": sender, "recipient": recipient})["fee_recipient"]

    def change_fee_multiplier(self, sender: str, multiplier: int) -> int:
        return self._post("/api/admin/fee_multiplier",
                          {"sender": sender, "multiplier": multiplier})["fee_multiplier"]

    def set_call_allowed(self, sender: str, target: str, allowed: bool) -> bool:
        return self._post("/api/admin/call_target",
                          {"sender": sender, "target": target, "allowed": allowed})["allowed"]

    def set_router_allowed(self, sender: str, router: str, allowed: bool) -> dict:
        """
        Returns:
            {"allowed": ..., "was_ever_allowed": ...}
        """
        result = self._post("/api/admin/router",
                            {"sender": sender, "router": router, "allowed": allowed})
        return {"allowed": result["allowed"], "was_ever_allowed": result["was_ever_allowed"]}

    def withdraw_fees(self, sender: str, token: str = "", amount: int = 0) -> int:
        """Withdraw native fees, or amount of token when token is given."""
        payload = {"sender": sender}
        if token:
            payload.update({"token": token, "amount": amount})
        return self._post("/api/admin/withdraw", payload)["amount"]

    def transfer_ownership(self, sender: str, new_owner: str) -> str:
        return self._post("/api/admin/owner", {"sender": sender, "new_owner": new_owner})["owner"]

    # ═══════════════════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════════════════

    def access(self, address: str) -> dict:
        return self._get(f"/api/access/{address}")

    def events(self, name: str = "") -> List[dict]:
        if name:
            return self._get("/api/events", name=name)["events"]
        return self._get("/api/events")["events"]
