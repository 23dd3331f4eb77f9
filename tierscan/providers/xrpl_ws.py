"""XRP Ledger websocket client implementation."""
import asyncio
import logging
from decimal import Decimal
from typing import Any, List, Optional
from xrpl.asyncio.clients import AsyncWebsocketClient
from xrpl.asyncio.clients.exceptions import XRPLWebsocketException
from xrpl.models.requests import AccountInfo, LedgerData, ServerInfo
from xrpl.models.requests.ledger_entry import LedgerEntryType
from xrpl.models.response import Response
from xrpl.utils import drops_to_xrp
from tierscan.providers import AccountNotFoundError, LedgerClient, LedgerError, ErrorKind
from tierscan.providers.models import AccountEntry, LedgerPage


logger = logging.getLogger(__name__)


class XrplLedgerClient(LedgerClient):
    """Websocket connection to a single rippled/clio endpoint."""

    def __init__(self, request_timeout: float = 30.0):
        self.request_timeout = request_timeout
        self._client: Optional[AsyncWebsocketClient] = None
        self._url: Optional[str] = None

    @property
    def url(self) -> Optional[str]:
        return self._url

    async def connect(self, url: str) -> None:
        """Open a websocket to ``url``, replacing any existing connection."""
        await self.close()

        client = AsyncWebsocketClient(url)
        try:
            await asyncio.wait_for(client.open(), timeout=self.request_timeout)
        except (XRPLWebsocketException, asyncio.TimeoutError, OSError) as e:
            raise LedgerError(ErrorKind.TRANSIENT, f"Failed to connect to {url}: {e}") from e

        self._client = client
        self._url = url
        logger.info(f"Connected to {url}")

    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_open()

    async def close(self) -> None:
        """Close the websocket, ignoring errors from an already broken connection."""
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            await client.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing {self._url}: {e}")

    async def _request(self, request) -> Response:
        """Send a request and map transport failures to LedgerError."""
        if self._client is None:
            raise LedgerError(ErrorKind.TRANSIENT, "Not connected")
        try:
            response = await asyncio.wait_for(self._client.request(request), timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise LedgerError(ErrorKind.TRANSIENT, f"Request timed out after {self.request_timeout}s") from e
        except XRPLWebsocketException as e:
            raise LedgerError(ErrorKind.TRANSIENT, f"Websocket error: {e}") from e
        except OSError as e:
            raise LedgerError(ErrorKind.TRANSIENT, f"Connection error: {e}") from e

        if not response.is_successful():
            result = response.result if isinstance(response.result, dict) else {}
            raise LedgerError.from_response(result.get("error"), result.get("error_message", ""))
        return response

    async def get_validated_ledger_index(self) -> int:
        """Return the latest validated ledger sequence from server_info."""
        response = await self._request(ServerInfo())
        info = response.result.get("info", {})

        validated = info.get("validated_ledger") or {}
        if validated.get("seq"):
            return int(validated["seq"])

        # Fall back to the upper bound of complete_ledgers, e.g. "32570-92345678"
        complete = info.get("complete_ledgers", "")
        if complete and complete != "empty":
            return int(complete.split(",")[-1].split("-")[-1])

        raise LedgerError(ErrorKind.FATAL, "Server did not report a validated ledger")

    async def fetch_account_page(
        self,
        ledger_index: int,
        marker: Optional[Any],
        limit: int
    ) -> LedgerPage:
        """Fetch one page of AccountRoot entries at ``ledger_index``."""
        request = LedgerData(
            ledger_index=ledger_index,
            type=LedgerEntryType.ACCOUNT,
            limit=limit,
            marker=marker,
        )
        response = await self._request(request)
        result = response.result

        return LedgerPage(
            ledger_index=int(result.get("ledger_index", ledger_index)),
            entries=self._parse_entries(result.get("state", [])),
            marker=result.get("marker"),
        )

    async def get_account_balance(self, address: str) -> Decimal:
        """Balance of one account from account_info at the validated ledger."""
        try:
            response = await self._request(AccountInfo(account=address, ledger_index="validated"))
        except LedgerError as e:
            if e.code == "actNotFound":
                raise AccountNotFoundError(address) from e
            raise

        account_data = response.result.get("account_data") or {}
        balance = account_data.get("Balance")
        if balance is None:
            raise LedgerError(ErrorKind.FATAL, f"account_info for {address} has no Balance")
        return drops_to_xrp(str(balance))

    def _parse_entries(self, state: List[dict]) -> List[AccountEntry]:
        """Parse AccountRoot entries, skipping anything else."""
        entries = []
        for item in state:
            if item.get("LedgerEntryType") != "AccountRoot":
                continue
            balance = item.get("Balance")
            address = item.get("Account")
            if not balance or not address:
                continue
            try:
                balance_drops = int(balance)
            except (TypeError, ValueError):
                logger.warning(f"Skipping {address}: unparseable balance {balance!r}")
                continue
            entries.append(AccountEntry(address=address, balance_drops=balance_drops))
        return entries


__all__ = ["XrplLedgerClient"]
