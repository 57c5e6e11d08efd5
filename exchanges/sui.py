"""
Sui ledger client built on pysui.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pysui import AsyncClient, SuiConfig
from pysui.sui.sui_builders.get_builders import GetCoinMetaData, GetCoinTypeBalance, GetCoins
from pysui.sui.sui_txn import AsyncTransaction
from pysui.sui.sui_types.address import SuiAddress
from pysui.sui.sui_types.scalars import ObjectID, SuiBoolean, SuiU64, SuiU128

from helpers.sui_keys import SigningIdentity

# Keep pysui / transport chatter out of the run log
logging.getLogger('pysui').setLevel(logging.WARNING)
logging.getLogger('httpx').setLevel(logging.WARNING)
logging.getLogger('httpcore').setLevel(logging.WARNING)


SUI_COIN_TYPE = "0x0000000000000000000000000000000000000000000000000000000000000002::sui::SUI"
CLOCK_OBJECT_ID = "0x0000000000000000000000000000000000000000000000000000000000000006"

FULLNODE_URLS = {
    "mainnet": "https://fullnode.mainnet.sui.io:443",
    "testnet": "https://fullnode.testnet.sui.io:443",
    "devnet": "https://fullnode.devnet.sui.io:443",
}

COINS_PAGE_LIMIT = 50


class InfrastructureError(RuntimeError):
    """RPC or transport failure talking to the Sui fullnode."""


class ProtocolExecutionFailure(RuntimeError):
    """The transaction executed but the ledger reported a non-success status."""


@dataclass(frozen=True)
class CoinObject:
    """A single owned coin object of some coin type."""

    object_id: str
    balance: int


@dataclass(frozen=True)
class ExecutionResult:
    """Normalized execution outcome of a submitted transaction."""

    status: str
    digest: Optional[str]
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


def fullnode_url(network: str) -> str:
    try:
        return FULLNODE_URLS[network]
    except KeyError as exc:
        raise ValueError(f"Unknown Sui network '{network}'") from exc


def object_arg(object_id: str) -> ObjectID:
    return ObjectID(object_id)


def pure_bool(value: bool) -> SuiBoolean:
    return SuiBoolean(bool(value))


def pure_u64(value: int) -> SuiU64:
    return SuiU64(int(value))


def pure_u128(value: int) -> SuiU128:
    return SuiU128(int(value))


def address_arg(address: str) -> SuiAddress:
    return SuiAddress(address)


class SuiLedgerClient:
    """Thin async wrapper exposing the ledger operations the swap engine needs."""

    def __init__(self, identity: SigningIdentity, rpc_url: str):
        self.identity = identity
        self.rpc_url = rpc_url
        self._client: Optional[AsyncClient] = None

    @property
    def client(self) -> AsyncClient:
        # pysui discovers the RPC schema on construction, so connect on first use
        if self._client is None:
            try:
                config = SuiConfig.user_config(rpc_url=self.rpc_url, prv_keys=[self.identity.keystring()])
                self._client = AsyncClient(config)
            except Exception as exc:
                raise InfrastructureError(f"Unable to connect to Sui RPC {self.rpc_url}: {exc}") from exc
        return self._client

    @property
    def address(self) -> str:
        return self.identity.address

    async def _execute_builder(self, builder: Any, label: str) -> Any:
        client = self.client
        try:
            result = await client.execute(builder)
        except Exception as exc:
            raise InfrastructureError(f"{label} request failed: {exc}") from exc
        if not result.is_ok():
            raise InfrastructureError(f"{label} request failed: {result.result_string}")
        return result.result_data

    async def get_balance(self, owner: str, coin_type: str) -> int:
        """Return the total raw balance of ``coin_type`` held by ``owner``."""
        data = await self._execute_builder(
            GetCoinTypeBalance(owner=SuiAddress(owner), coin_type=coin_type),
            f"Balance ({coin_type})",
        )
        return int(data.total_balance)

    async def get_coins(self, owner: str, coin_type: str) -> List[CoinObject]:
        """Enumerate every coin object of ``coin_type`` owned by ``owner``."""
        coins: List[CoinObject] = []
        cursor: Optional[str] = None
        while True:
            builder = GetCoins(
                owner=SuiAddress(owner),
                coin_type=coin_type,
                cursor=ObjectID(cursor) if cursor else None,
                limit=COINS_PAGE_LIMIT,
            )
            page = await self._execute_builder(builder, f"Coins ({coin_type})")
            for coin in page.data:
                coins.append(CoinObject(object_id=str(coin.coin_object_id), balance=int(coin.balance)))
            if not getattr(page, "has_next_page", False) or not page.next_cursor:
                break
            cursor = str(page.next_cursor)
        return coins

    async def get_coin_decimals(self, coin_type: str) -> Optional[int]:
        """Return on-chain ``CoinMetadata.decimals``, or None when the coin has no metadata.

        Raises:
            InfrastructureError: the lookup itself failed.
        """
        data = await self._execute_builder(GetCoinMetaData(coin_type=coin_type), f"Metadata ({coin_type})")
        if data is None:
            return None
        decimals = getattr(data, "decimals", None)
        if decimals is None:
            return None
        try:
            return int(decimals)
        except (TypeError, ValueError):
            return None

    def new_transaction(self) -> AsyncTransaction:
        return AsyncTransaction(client=self.client, initial_sender=SuiAddress(self.address))

    async def execute(self, txn: AsyncTransaction, gas_budget: Optional[int] = None) -> ExecutionResult:
        """Sign and submit ``txn`` requesting effects and events."""
        options: Dict[str, bool] = {"showEffects": True, "showEvents": True}
        try:
            if gas_budget:
                result = await txn.execute(gas_budget=str(gas_budget), options=options)
            else:
                result = await txn.execute(options=options)
        except Exception as exc:
            raise InfrastructureError(f"Transaction submission failed: {exc}") from exc

        if not result.is_ok():
            raise InfrastructureError(f"Transaction submission failed: {result.result_string}")

        response = result.result_data
        effects = getattr(response, "effects", None)
        status = getattr(effects, "status", None)
        return ExecutionResult(
            status=str(getattr(status, "status", "unknown")),
            digest=getattr(response, "digest", None),
            error=getattr(status, "error", None),
        )
