"""HTTP client for the MEE relay node.

Only forms requests and interprets responses: quoting, execution and
receipt tracking all happen inside the node.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import requests

from errors import InfrastructureError, RelayError, extract_error_details
from models import FusionQuote, Instruction, SupertransactionReceipt, SupertransactionStatus

logger = logging.getLogger(__name__)


class RelayClient:
    """Thin wrapper around the relay's info, quote, exec and explorer endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.log = log or logger

    # ------------------------------------------------------------------
    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise RelayError(f"Relay request {method} {path} failed: {e}", e) from e

        try:
            data = resp.json()
        except ValueError:
            data = {"message": resp.text}

        if resp.status_code >= 400:
            raise RelayError(
                f"Relay returned HTTP {resp.status_code} for {method} {path}: {extract_error_details(data)}",
                status_code=resp.status_code,
            )
        return data

    # ------------------------------------------------------------------
    def info(self) -> Dict[str, Any]:
        """Return node info, failing loudly when the node is not reachable."""
        try:
            return self._request("GET", "/info")
        except RelayError as e:
            raise InfrastructureError(
                f"MEE node is not accessible at {self.base_url}. {e.message}. "
                "Start it with ./scripts/start-mee-node.sh and make sure MEE_NODE_URL points at it",
                e,
            ) from e

    def get_fusion_quote(
        self,
        account: str,
        instructions: Sequence[Instruction],
        trigger: Dict[str, Any],
        fee_token: Dict[str, Any],
    ) -> FusionQuote:
        payload = {
            "mode": "fusion",
            "account": account,
            "instructions": [i.to_dict() for i in instructions],
            "trigger": {**trigger, "amount": str(trigger["amount"])},
            "feeToken": fee_token,
        }
        data = self._request("POST", "/quote", payload)
        quote_hash = data.get("hash") or data.get("quote", {}).get("hash")
        if not quote_hash:
            raise RelayError(f"Relay quote response has no hash: {extract_error_details(data)}")

        fee = data.get("paymentInfo", {}).get("tokenWeiAmount")
        return FusionQuote(hash=quote_hash, payload=data, fee_amount=int(fee) if fee is not None else None)

    def execute_fusion_quote(self, quote: FusionQuote, signature: str) -> str:
        data = self._request("POST", "/exec", {"quote": quote.payload, "signature": signature})
        supertx_hash = data.get("hash")
        if not supertx_hash:
            raise RelayError(f"Relay exec response has no hash: {extract_error_details(data)}")
        return supertx_hash

    def get_receipt(self, supertx_hash: str) -> SupertransactionReceipt:
        data = self._request("GET", f"/explorer/{supertx_hash}")
        return parse_receipt(supertx_hash, data)

    def wait_for_supertransaction_receipt(
        self,
        supertx_hash: str,
        *,
        poll_interval: float = 1.0,
        timeout: float = 300.0,
    ) -> SupertransactionReceipt:
        """
        Poll the explorer endpoint until the supertransaction reaches a terminal status.

        Raises:
            InfrastructureError: If no terminal status is seen before ``timeout``
        """
        deadline = time.monotonic() + timeout
        while True:
            receipt = self.get_receipt(supertx_hash)
            if receipt.status.is_terminal:
                return receipt

            self.log.debug(f"Supertransaction {supertx_hash} status: {receipt.status.value}")
            if time.monotonic() >= deadline:
                raise InfrastructureError(
                    f"Timed out after {timeout}s waiting for supertransaction {supertx_hash} "
                    f"(last status: {receipt.status.value})"
                )
            time.sleep(poll_interval)


def parse_receipt(supertx_hash: str, data: Dict[str, Any]) -> SupertransactionReceipt:
    status = SupertransactionStatus.parse(data.get("transactionStatus"))

    tx_hashes: List[str] = []
    for entry in data.get("receipts") or []:
        tx_hash = entry.get("transactionHash") if isinstance(entry, dict) else entry
        if tx_hash and tx_hash not in tx_hashes:
            tx_hashes.append(tx_hash)
    for user_op in data.get("userOps") or []:
        tx_hash = user_op.get("executionData")
        if isinstance(tx_hash, str) and len(tx_hash) == 66 and tx_hash not in tx_hashes:
            tx_hashes.append(tx_hash)

    return SupertransactionReceipt(hash=supertx_hash, status=status, transaction_hashes=tuple(tx_hashes), raw=data)


def receipt_diagnostics(receipt: SupertransactionReceipt) -> str:
    """Diagnostic text the relay attached to a failed supertransaction."""
    op_errors = [op["executionError"] for op in receipt.raw.get("userOps") or [] if op.get("executionError")]
    if op_errors:
        return "; ".join(str(e) for e in op_errors)
    return extract_error_details(receipt.raw)
