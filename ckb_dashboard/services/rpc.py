import itertools
import logging
from typing import Any, Optional

import requests

from ckb_dashboard.services.errors import NetworkError, ProtocolError

logger = logging.getLogger(__name__)


class CkbRpcClient:
    """JSON-RPC 2.0 client for a CKB full node.

    RPC reference: https://github.com/nervosnetwork/ckb/blob/master/rpc/README.md
    """

    def __init__(self, url: str, timeout: float | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._ids = itertools.count(1)

    def _request(self, method: str, params: Optional[list] = None) -> dict[str, Any]:
        return {"id": next(self._ids), "jsonrpc": "2.0", "method": method, "params": params or []}

    def _post(self, payload: Any) -> Any:
        if not self.url:
            raise NetworkError("RPC endpoint not configured")
        try:
            response = requests.post(
                self.url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise NetworkError(f"Request to {self.url} failed: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise ProtocolError(f"Response from {self.url} is not JSON") from exc

    @staticmethod
    def _result(request: dict[str, Any], data: Any) -> Any:
        if not isinstance(data, dict):
            raise ProtocolError(f"Malformed response to {request['method']}: {data!r}")
        if data.get("error"):
            raise ProtocolError(f"{request['method']} failed: {data['error']}")
        if "result" not in data:
            raise ProtocolError(f"Response to {request['method']} has no result")
        return data["result"]

    def call(self, method: str, params: Optional[list] = None) -> Any:
        request = self._request(method, params)
        data = self._post(request)
        if isinstance(data, dict) and data.get("id") not in (None, request["id"]):
            raise ProtocolError(f"Response id {data.get('id')!r} does not match request {request['id']}")
        return self._result(request, data)

    def batch_call(self, calls: list[tuple[str, Optional[list]]]) -> list[Any]:
        """Send several calls in one POST and return their results in call order.

        Batched responses may come back in any order, so they are matched to
        requests by id.
        """
        requests_ = [self._request(method, params) for method, params in calls]
        if not requests_:
            return []
        data = self._post(requests_)
        if not isinstance(data, list):
            # Nodes reply to an invalid batch with a single error object.
            if isinstance(data, dict) and data.get("error"):
                raise ProtocolError(f"Batch request failed: {data['error']}")
            raise ProtocolError(f"Malformed batch response: {data!r}")
        by_id: dict[Any, Any] = {}
        for item in data:
            if isinstance(item, dict) and "id" in item:
                by_id[item["id"]] = item
        results = []
        for request in requests_:
            if request["id"] not in by_id:
                raise ProtocolError(f"No response for {request['method']} (id {request['id']})")
            results.append(self._result(request, by_id[request["id"]]))
        logger.debug("Batch of %d calls answered by %s", len(requests_), self.url)
        return results

    def get_tip_header(self) -> Any:
        return self.call("get_tip_header")

    def get_blockchain_info(self) -> Any:
        return self.call("get_blockchain_info")

    def tx_pool_info(self) -> Any:
        return self.call("tx_pool_info")

    def local_node_info(self) -> Any:
        return self.call("local_node_info")

    def get_block_by_number(self, number: int, verbosity: str = "0x2", with_cycles: bool = True) -> Any:
        return self.call("get_block_by_number", [hex(number), verbosity, with_cycles])
