"""Live balance lookup for a single address."""
import logging
from decimal import Decimal
from typing import Callable, Tuple
from xrpl.core.addresscodec import (
    is_valid_classic_address,
    is_valid_xaddress,
    xaddress_to_classic_address,
)
from tierscan.core.config import Settings
from tierscan.providers import LedgerClient, LedgerError, LedgerConnectionError
from tierscan.providers.xrpl_ws import XrplLedgerClient
from tierscan.services.endpoint_pool import EndpointPool


logger = logging.getLogger(__name__)


class InvalidAddressError(ValueError):
    """Not a classic r-address or X-address."""


def normalize_address(address: str) -> str:
    """
    Return the classic address for a classic or X-address.

    Raises:
        InvalidAddressError: If the address is malformed
    """
    address = (address or "").strip()
    if address.startswith("r") and is_valid_classic_address(address):
        return address
    if address[:1] in ("X", "T") and is_valid_xaddress(address):
        classic, _tag, _is_test = xaddress_to_classic_address(address)
        return classic
    raise InvalidAddressError(f"Invalid XRP address: {address!r}")


class BalanceLookup:
    """
    Fetches one account's balance using the shared endpoint pool.

    Each lookup opens its own short-lived connection; transient failures move
    on to the next endpoint, at most once per endpoint.
    """

    def __init__(self, pool: EndpointPool, client_factory: Callable[[], LedgerClient]):
        self.pool = pool
        self._client_factory = client_factory

    async def get_balance(self, address: str) -> Tuple[str, Decimal]:
        """
        Look up the current balance of ``address``.

        Returns:
            (classic address, balance in XRP)

        Raises:
            InvalidAddressError: If the address is malformed
            AccountNotFoundError: If the account does not exist
            LedgerConnectionError: If no endpoint answered
            LedgerError: For fatal remote errors
        """
        classic = normalize_address(address)
        client = self._client_factory()
        try:
            for _ in range(len(self.pool)):
                url = self.pool.next()
                try:
                    await client.connect(url)
                    balance = await client.get_account_balance(classic)
                except LedgerError as e:
                    if not e.is_transient:
                        raise
                    logger.warning(f"Balance lookup via {url} failed: {e}")
                    self.pool.report_failure(url)
                    continue

                self.pool.report_success(url)
                return classic, balance
        finally:
            await client.close()

        raise LedgerConnectionError("No XRPL endpoint available for balance lookup")


def create_balance_lookup(config: Settings) -> BalanceLookup:
    """Balance lookup over the configured endpoints."""
    pool = EndpointPool(
        config.endpoint_list,
        failure_threshold=config.endpoint_failure_threshold,
        cooldown_seconds=config.endpoint_cooldown_seconds,
    )
    return BalanceLookup(pool, lambda: XrplLedgerClient(request_timeout=config.xrpl_connection_timeout))
