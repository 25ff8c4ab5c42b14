"""Monarch Money MCP server: exposes the registered tools over FastMCP."""

import logging
from typing import Any, Callable, Dict, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request

from .models import Envelope, Session
from .services.monarch_client import configure_base_url
from .settings import get_settings
from .tools import TOOLS, get_dispatcher_async

logger = logging.getLogger(__name__)

settings = get_settings()
configure_base_url(settings.monarch_base_url)

mcp = FastMCP(
    settings.server_name,
    instructions=(
        "Read and update Monarch Money accounts, transactions, budgets, cashflow "
        "and holdings. Call check_auth_status first; if no token is stored, "
        "call setup_authentication for instructions."
    ),
)


def current_session() -> Session:
    """Resolve the calling user from the transport.

    Over HTTP the user id comes from the configured header; over stdio there is
    a single local user.
    """
    try:
        request = get_http_request()
    except RuntimeError:
        return Session(user_id=settings.default_user_id)
    user_id = (request.headers.get(settings.user_id_header) or "").strip()
    if not user_id:
        raise ToolError(f"Missing {settings.user_id_header} header for this session")
    return Session(user_id=user_id)


def render_envelope(envelope: Envelope) -> str:
    """Hand an envelope to FastMCP: text on success, ToolError (isError) on failure."""
    if envelope.is_error:
        raise ToolError(envelope.text)
    return envelope.text


async def _dispatch(tool_name: str, arguments: Optional[Dict[str, Any]] = None) -> str:
    dispatcher = await get_dispatcher_async()
    envelope = await dispatcher.dispatch(tool_name, current_session(), arguments)
    return render_envelope(envelope)


def _present(**kwargs: Any) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if v is not None}


def _tool(name: str) -> Callable[[Callable[..., Any]], Any]:
    return mcp.tool(name=name, description=TOOLS[name].description)


@_tool("setup_authentication")
async def setup_authentication() -> str:
    return await _dispatch("setup_authentication")


@_tool("check_auth_status")
async def check_auth_status() -> str:
    return await _dispatch("check_auth_status")


@_tool("get_accounts")
async def get_accounts() -> str:
    return await _dispatch("get_accounts")


@_tool("get_transactions")
async def get_transactions(
    limit: int = 100,
    offset: int = 0,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    account_id: Optional[str] = None,
) -> str:
    return await _dispatch(
        "get_transactions",
        _present(
            limit=limit,
            offset=offset,
            start_date=start_date,
            end_date=end_date,
            account_id=account_id,
        ),
    )


@_tool("get_budgets")
async def get_budgets() -> str:
    return await _dispatch("get_budgets")


@_tool("get_cashflow")
async def get_cashflow(start_date: Optional[str] = None, end_date: Optional[str] = None) -> str:
    return await _dispatch("get_cashflow", _present(start_date=start_date, end_date=end_date))


@_tool("get_account_holdings")
async def get_account_holdings(account_id: str) -> str:
    return await _dispatch("get_account_holdings", {"account_id": account_id})


@_tool("create_transaction")
async def create_transaction(
    account_id: str,
    amount: float,
    description: str,
    date: str,
    category_id: Optional[str] = None,
    merchant_name: Optional[str] = None,
) -> str:
    return await _dispatch(
        "create_transaction",
        _present(
            account_id=account_id,
            amount=amount,
            description=description,
            date=date,
            category_id=category_id,
            merchant_name=merchant_name,
        ),
    )


@_tool("update_transaction")
async def update_transaction(
    transaction_id: str,
    amount: Optional[float] = None,
    description: Optional[str] = None,
    category_id: Optional[str] = None,
    date: Optional[str] = None,
) -> str:
    return await _dispatch(
        "update_transaction",
        _present(
            transaction_id=transaction_id,
            amount=amount,
            description=description,
            category_id=category_id,
            date=date,
        ),
    )


@_tool("refresh_accounts")
async def refresh_accounts() -> str:
    return await _dispatch("refresh_accounts")


logger.info("Monarch MCP server initialized with %d tools", len(TOOLS))


if __name__ == "__main__":
    mcp.run(transport="stdio")
