# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""HTTP client for the external funds gateway.

The gateway custodies stakes for the externally settled provider. Every
call returns the gateway's transaction reference; any transport or API
failure surfaces as ``SettlementError``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from ..core.exceptions import SettlementError

logger = logging.getLogger(__name__)


@runtime_checkable
class FundsGateway(Protocol):
    """Moves stake funds outside the platform ledger."""

    def lock(self, stake_id: str, task_id: str, worker_address: str | None, amount: int) -> str: ...

    def release(self, stake_id: str, worker_address: str | None, amount: int) -> str: ...

    def distribute(self, stake_id: str, payouts: list[dict[str, Any]]) -> str: ...

    def allowance(self, address: str) -> int: ...

    def close(self) -> None: ...


class HttpFundsGateway:
    """Thin HTTP client for a REST funds gateway."""

    def __init__(self, base_url: str, token: str = "", timeout: float = 10.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}/v1{path}"

    def _handle_response(self, resp: httpx.Response, operation: str) -> dict[str, Any]:
        """Parse response, raise SettlementError on failure."""
        if resp.status_code >= 400:
            try:
                message = resp.json().get("error", {}).get("message", resp.text)
            except (json.JSONDecodeError, AttributeError):
                message = resp.text
            raise SettlementError(
                f"Gateway rejected {operation} [{resp.status_code}]: {message}",
                provider="gateway",
                operation=operation,
            )
        try:
            return resp.json()
        except json.JSONDecodeError as e:
            raise SettlementError(
                f"Gateway returned invalid JSON for {operation}",
                provider="gateway",
                operation=operation,
            ) from e

    def _request(self, method: str, path: str, operation: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute an HTTP request with connection error handling."""
        try:
            resp = self._client.request(
                method,
                self._url(path),
                headers=self._headers(),
                json=body if method == "POST" else None,
            )
        except httpx.ConnectError as e:
            raise SettlementError(
                f"Cannot connect to funds gateway at {self.base_url}",
                provider="gateway",
                operation=operation,
            ) from e
        except httpx.TimeoutException as e:
            raise SettlementError(
                f"Funds gateway timed out during {operation}",
                provider="gateway",
                operation=operation,
            ) from e
        except httpx.HTTPError as e:
            raise SettlementError(
                f"Funds gateway request failed during {operation}: {e}",
                provider="gateway",
                operation=operation,
            ) from e
        return self._handle_response(resp, operation)

    def _tx_ref(self, data: dict[str, Any], operation: str) -> str:
        tx_ref = data.get("tx_ref")
        if not tx_ref:
            raise SettlementError(
                f"Gateway response for {operation} has no tx_ref",
                provider="gateway",
                operation=operation,
            )
        return str(tx_ref)

    def lock(self, stake_id: str, task_id: str, worker_address: str | None, amount: int) -> str:
        data = self._request(
            "POST",
            "/stakes",
            "lock",
            {"stake_id": stake_id, "task_id": task_id, "address": worker_address, "amount": amount},
        )
        return self._tx_ref(data, "lock")

    def release(self, stake_id: str, worker_address: str | None, amount: int) -> str:
        data = self._request(
            "POST",
            f"/stakes/{stake_id}/release",
            "release",
            {"address": worker_address, "amount": amount},
        )
        return self._tx_ref(data, "release")

    def distribute(self, stake_id: str, payouts: list[dict[str, Any]]) -> str:
        data = self._request("POST", f"/stakes/{stake_id}/distribute", "distribute", {"payouts": payouts})
        return self._tx_ref(data, "distribute")

    def allowance(self, address: str) -> int:
        data = self._request("GET", f"/allowances/{address}", "allowance")
        try:
            return int(data.get("amount", 0))
        except (TypeError, ValueError) as e:
            raise SettlementError("Gateway returned a malformed allowance", provider="gateway", operation="allowance") from e

    def close(self) -> None:
        self._client.close()
