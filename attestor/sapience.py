"""
Sapience client for fetching active markets and recorded attestations.

This module talks to the Sapience MCP endpoint (JSON-RPC 2.0 over HTTP) and
normalizes the returned data into Python objects. It performs no business
logic - only data fetching and transformation.
"""

import itertools
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import requests
from requests.exceptions import RequestException, Timeout, ConnectionError

from attestor.config import Config
from attestor.models import ZERO_ADDRESS, AttestationRecord, Market
from attestor.utils import parse_timestamp, retry_with_backoff, safe_float, safe_json_loads

# Configure module logger
logger = logging.getLogger(__name__)

MCP_PROTOCOL_VERSION = "2025-03-26"
SESSION_HEADER = "Mcp-Session-Id"


class SapienceError(Exception):
    """Raised when the Sapience API cannot be reached or returns an error."""


class SapienceClient:
    """
    Minimal MCP client for the Sapience tool server.

    Performs the MCP initialize handshake on first use, then invokes tools
    with `tools/call`. Tool results carry JSON text in their first content
    block; that text is decoded and returned.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            url: MCP endpoint. If None, uses Config.SAPIENCE_MCP_URL
            timeout: Request timeout in seconds. If None, uses Config.API_TIMEOUT
            session: requests session to use (a new one is created if None)
        """
        self.url = url or Config.SAPIENCE_MCP_URL
        self.timeout = timeout or Config.API_TIMEOUT
        self.session = session or requests.Session()
        self._session_id: Optional[str] = None
        self._initialized = False
        self._ids = itertools.count(1)

    # Tools

    def list_active_markets(self) -> list[Market]:
        """Fetch and normalize all active markets."""
        data = self.call_tool("list_active_markets")
        markets = normalize_markets(data)
        logger.info(f"Fetched {len(markets)} active markets from Sapience")
        return markets

    def get_attestations_by_address(self, attester: str) -> list[AttestationRecord]:
        """
        Fetch every attestation made by an address, newest first.

        Args:
            attester: Attester wallet address
        """
        data = self.call_tool("get_attestations_by_address", {"attesterAddress": attester})
        records = normalize_attestations(data)
        logger.info(f"Fetched {len(records)} attestations for {attester}")
        return sort_newest_first(records)

    def get_recent_attestations(self, limit: int = 100, market_id: Optional[int] = None) -> list[AttestationRecord]:
        """
        Fetch the latest attestations across all attesters, newest first.

        Args:
            limit: Maximum number of attestations to return
            market_id: Only return attestations for this market id
        """
        arguments: dict[str, Any] = {"limit": limit}
        if market_id is not None:
            arguments["marketId"] = str(market_id)
        return sort_newest_first(normalize_attestations(self.call_tool("get_recent_attestations", arguments)))

    # Protocol

    def call_tool(self, name: str, arguments: Optional[dict] = None) -> Any:
        """
        Invoke a tool and decode its JSON result.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            Decoded JSON from the first content block

        Raises:
            SapienceError: On transport, protocol or tool errors
        """
        if not self._initialized:
            self._initialize()

        result = self._rpc("tools/call", {"name": name, "arguments": arguments or {}})

        content = result.get("content") or []
        text = content[0].get("text") if content and isinstance(content[0], dict) else None

        if result.get("isError"):
            raise SapienceError(f"Tool {name} failed: {text or 'no details'}")

        if text is None:
            raise SapienceError(f"Tool {name} returned no content")

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            data = safe_json_loads(text)
            if data is None:
                raise SapienceError(f"Tool {name} returned non-JSON content: {text[:200]}") from None
            return data

    def _initialize(self) -> None:
        logger.debug(f"Initializing MCP session with {self.url}")
        self._rpc("initialize", {
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": "attestor", "version": "0.1.0"},
        })
        self._send({"jsonrpc": "2.0", "method": "notifications/initialized"})
        self._initialized = True

    def _rpc(self, method: str, params: dict) -> dict:
        request_id = next(self._ids)
        response = self._send({
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params,
        })

        message = _parse_rpc_response(response, request_id)
        if "error" in message:
            error = message["error"] or {}
            raise SapienceError(f"{method} failed: {error.get('message', error)}")

        result = message.get("result")
        if not isinstance(result, dict):
            raise SapienceError(f"{method} returned no result")
        return result

    def _send(self, payload: dict) -> requests.Response:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            "User-Agent": "PredictionAttestor/1.0",
        }
        if self._session_id:
            headers[SESSION_HEADER] = self._session_id

        try:
            response = self._post(payload, headers)
            response.raise_for_status()
        except Timeout as e:
            raise SapienceError(f"Request to Sapience timed out after {self.timeout}s") from e
        except RequestException as e:
            if getattr(e, "response", None) is not None:
                logger.error(f"Response status: {e.response.status_code}")
                logger.error(f"Response body: {e.response.text[:500]}")
            raise SapienceError(f"Sapience request failed: {e}") from e

        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            self._session_id = session_id
        return response

    @retry_with_backoff(max_retries=2, initial_delay=1.0, exceptions=(Timeout, ConnectionError))
    def _post(self, payload: dict, headers: dict) -> requests.Response:
        return self.session.post(self.url, json=payload, headers=headers, timeout=self.timeout)


def _parse_rpc_response(response: requests.Response, request_id: int) -> dict:
    """
    Extract the JSON-RPC message answering request_id.

    Handles both plain JSON bodies and server-sent event streams.
    """
    content_type = response.headers.get("Content-Type", "")

    if "text/event-stream" in content_type:
        messages = []
        for line in response.text.splitlines():
            if line.startswith("data:"):
                try:
                    messages.append(json.loads(line[5:].strip()))
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed event: {line[:200]}")
    else:
        try:
            body = response.json()
        except ValueError as e:
            raise SapienceError(f"Failed to parse JSON response: {e}") from e
        messages = body if isinstance(body, list) else [body]

    for message in messages:
        if isinstance(message, dict) and message.get("id") == request_id:
            return message

    raise SapienceError(f"No response for request {request_id}")


def normalize_markets(api_data: Any) -> list[Market]:
    """
    Normalize raw market data into Market objects.

    Invalid entries are skipped with a warning.

    Args:
        api_data: List of market dictionaries from Sapience

    Returns:
        List of normalized Market objects
    """
    markets: list[Market] = []

    if not isinstance(api_data, list):
        logger.warning(f"Expected list of markets, got {type(api_data)}")
        return markets

    for idx, market_data in enumerate(api_data):
        market = _parse_market(market_data)
        if market:
            markets.append(market)
        else:
            logger.warning(f"Skipping malformed market at index {idx}")

    return markets


def _parse_market(data: Any) -> Optional[Market]:
    if not isinstance(data, dict):
        return None

    listing_id = data.get("id")
    raw_market_id = data.get("marketId")
    if raw_market_id is None:
        raw_market_id = listing_id

    market_id = _parse_int(raw_market_id)
    if market_id is None or market_id < 0:
        logger.debug(f"Market has no usable marketId: {data}")
        return None

    address = (
        data.get("marketGroupAddress")
        or data.get("marketAddress")
        or data.get("contractAddress")
        or ZERO_ADDRESS
    )

    return Market(
        id=str(listing_id if listing_id is not None else market_id),
        market_id=market_id,
        address=address,
        question=data.get("question") or "Unknown Market",
        current_price=safe_float(data.get("currentPrice"), None),
        volume=safe_float(data.get("volume"), 0.0),
        end_date=parse_timestamp(data.get("endTimestamp") or data.get("endDate")),
    )


def normalize_attestations(api_data: Any) -> list[AttestationRecord]:
    """
    Normalize raw attestation data into AttestationRecord objects.

    Accepts a list, or an object wrapping the list under "attestations".
    """
    if isinstance(api_data, dict):
        api_data = api_data.get("attestations")

    if not isinstance(api_data, list):
        logger.warning(f"Expected list of attestations, got {type(api_data)}")
        return []

    records: list[AttestationRecord] = []
    for idx, item in enumerate(api_data):
        if not isinstance(item, dict) or item.get("marketId") is None:
            logger.warning(f"Skipping malformed attestation at index {idx}")
            continue

        records.append(AttestationRecord(
            attester=item.get("attester") or "",
            market_address=item.get("marketAddress") or "",
            market_id=str(item["marketId"]),
            prediction=item.get("prediction"),
            created_at=parse_timestamp(item.get("createdAt")),
            uid=str(item.get("uid") or item.get("id") or ""),
            comment=item.get("comment") or "",
        ))

    return records


def sort_newest_first(records: list[AttestationRecord]) -> list[AttestationRecord]:
    """Sort records by creation time, newest first; undated records go last."""
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(records, key=lambda r: r.created_at or oldest, reverse=True)


def _parse_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None
