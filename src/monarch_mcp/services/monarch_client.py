"""Session-bound Monarch Money client built from a stored bearer token."""

import functools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from monarchmoney import MonarchMoney
from monarchmoney.monarchmoney import MonarchMoneyEndpoints

from ..results import Err, ErrorKind, Ok, Result, error_message
from ..settings import get_settings

logger = logging.getLogger(__name__)


def _upstream(operation: str) -> Callable[..., Callable[..., Awaitable[Result[Any]]]]:
    """Turn any exception raised by a monarchmoney call into Err(UPSTREAM)."""

    def decorator(fn: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Result[Any]]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Result[Any]:
            try:
                return Ok(await fn(*args, **kwargs))
            except Exception as e:
                logger.warning("Monarch %s failed: %s", operation, e)
                return Err(ErrorKind.UPSTREAM, error_message(e))

        return wrapper

    return decorator


class MonarchClient:
    """Typed operations against Monarch Money for one credential."""

    def __init__(self, api: MonarchMoney) -> None:
        self._api = api

    @_upstream("get_accounts")
    async def get_accounts(self) -> Dict[str, Any]:
        return await self._api.get_accounts()

    @_upstream("get_transactions")
    async def get_transactions(
        self,
        limit: int = 100,
        offset: int = 0,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._api.get_transactions(
            limit=limit,
            offset=offset,
            start_date=start_date,
            end_date=end_date,
            account_ids=[account_id] if account_id else [],
        )

    @_upstream("get_budgets")
    async def get_budgets(self) -> Dict[str, Any]:
        return await self._api.get_budgets()

    @_upstream("get_cashflow")
    async def get_cashflow(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._api.get_cashflow(start_date=start_date, end_date=end_date)

    @_upstream("get_account_holdings")
    async def get_account_holdings(self, account_id: str) -> Dict[str, Any]:
        return await self._api.get_account_holdings(account_id)

    @_upstream("create_transaction")
    async def create_transaction(
        self,
        account_id: str,
        amount: float,
        description: str,
        date: str,
        category_id: Optional[str] = None,
        merchant_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        # Monarch has no free-text description field; it is stored as notes and
        # doubles as the merchant when none is given. A missing category is sent
        # as null so Monarch leaves the transaction uncategorized.
        return await self._api.create_transaction(
            date=date,
            account_id=account_id,
            amount=amount,
            merchant_name=merchant_name or description,
            category_id=category_id,
            notes=description,
        )

    @_upstream("update_transaction")
    async def update_transaction(
        self,
        transaction_id: str,
        amount: Optional[float] = None,
        description: Optional[str] = None,
        category_id: Optional[str] = None,
        date: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._api.update_transaction(
            transaction_id,
            category_id=category_id,
            amount=amount,
            date=date,
            notes=description,
        )

    @_upstream("request_accounts_refresh")
    async def request_accounts_refresh(self) -> bool:
        accounts = await self._api.get_accounts()
        account_ids: List[str] = [
            str(account["id"]) for account in (accounts or {}).get("accounts") or []
        ]
        logger.info("Requesting refresh of %d accounts", len(account_ids))
        return await self._api.request_accounts_refresh(account_ids)


class MonarchClientFactory:
    """Builds a MonarchClient per invocation. Performs no network I/O."""

    def __init__(self, timeout_seconds: int = 10) -> None:
        self._timeout = timeout_seconds

    def build(self, credential: str) -> Result[MonarchClient]:
        try:
            api = MonarchMoney(token=credential, timeout=self._timeout)
        except Exception as e:
            logger.warning("Monarch client construction failed: %s", e)
            return Err(ErrorKind.CLIENT, error_message(e))
        return Ok(MonarchClient(api))


def get_client_factory() -> MonarchClientFactory:
    """Return a client factory configured from settings."""
    settings = get_settings()
    return MonarchClientFactory(
        timeout_seconds=settings.upstream_timeout_seconds,
    )


def configure_base_url(base_url: str | None) -> None:
    """Point monarchmoney at another API host. Process-wide; call once at startup."""
    if not base_url:
        return
    MonarchMoneyEndpoints.BASE_URL = base_url.rstrip("/")
    logger.info("Using Monarch API base URL: %s", MonarchMoneyEndpoints.BASE_URL)
