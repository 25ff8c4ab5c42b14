import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type

from pydantic import ValidationError

from ..models import Envelope, Session
from ..results import Err, ErrorKind, Ok, Result, error_message
from ..services.credential_service import CredentialStore, get_credential_store_async
from ..services.monarch_client import MonarchClientFactory, get_client_factory
from . import messages
from .projections import project_accounts, project_budgets, project_transactions
from .schemas import (
    CreateTransactionArgs,
    GetAccountHoldingsArgs,
    GetCashflowArgs,
    GetTransactionsArgs,
    NoArgs,
    ToolArgs,
    UpdateTransactionArgs,
)

logger = logging.getLogger(__name__)

Projection = Callable[[Any], Any]
SessionCall = Callable[[Session, CredentialStore], Awaitable[Result[str]]]


class UnknownToolError(KeyError):
    """Raised for a tool name that is not registered."""


@dataclass(frozen=True)
class ToolDefinition:
    """A registered tool.

    Exactly one of `operation` (a MonarchClient method name, called with the
    validated arguments) or `session_call` (a tool that never builds a client)
    is set.
    """

    name: str
    description: str
    arguments: Type[ToolArgs]
    action: str
    operation: Optional[str] = None
    project: Optional[Projection] = None
    session_call: Optional[SessionCall] = None


async def _setup_authentication(session: Session, store: CredentialStore) -> Result[str]:
    return Ok(messages.setup_instructions())


async def _check_auth_status(session: Session, store: CredentialStore) -> Result[str]:
    credential = await store.resolve_credential(session.user_id)
    if isinstance(credential, Err):
        return credential
    return Ok(messages.auth_status(session.user_id, credential.value is not None))


TOOL_DEFINITIONS: List[ToolDefinition] = [
    ToolDefinition(
        name="setup_authentication",
        description="Show how to connect a Monarch Money account to this server.",
        arguments=NoArgs,
        action="showing setup instructions",
        session_call=_setup_authentication,
    ),
    ToolDefinition(
        name="check_auth_status",
        description="Report whether a Monarch Money token is stored for this session.",
        arguments=NoArgs,
        action="checking auth status",
        session_call=_check_auth_status,
    ),
    ToolDefinition(
        name="get_accounts",
        description="List all Monarch Money accounts with balances.",
        arguments=NoArgs,
        action="getting accounts",
        operation="get_accounts",
        project=project_accounts,
    ),
    ToolDefinition(
        name="get_transactions",
        description="List transactions, optionally filtered by date range and account.",
        arguments=GetTransactionsArgs,
        action="getting transactions",
        operation="get_transactions",
        project=project_transactions,
    ),
    ToolDefinition(
        name="get_budgets",
        description="List budgets with amounts spent and remaining.",
        arguments=NoArgs,
        action="getting budgets",
        operation="get_budgets",
        project=project_budgets,
    ),
    ToolDefinition(
        name="get_cashflow",
        description="Get income and expense cashflow, optionally for a date range.",
        arguments=GetCashflowArgs,
        action="getting cashflow",
        operation="get_cashflow",
    ),
    ToolDefinition(
        name="get_account_holdings",
        description="Get investment holdings for one account.",
        arguments=GetAccountHoldingsArgs,
        action="getting account holdings",
        operation="get_account_holdings",
    ),
    ToolDefinition(
        name="create_transaction",
        description="Create a manual transaction.",
        arguments=CreateTransactionArgs,
        action="creating transaction",
        operation="create_transaction",
    ),
    ToolDefinition(
        name="update_transaction",
        description="Update fields of an existing transaction.",
        arguments=UpdateTransactionArgs,
        action="updating transaction",
        operation="update_transaction",
    ),
    ToolDefinition(
        name="refresh_accounts",
        description="Ask Monarch Money to refresh all account data from institutions.",
        arguments=NoArgs,
        action="refreshing accounts",
        operation="request_accounts_refresh",
    ),
]


def build_registry(definitions: List[ToolDefinition]) -> Mapping[str, ToolDefinition]:
    """Index definitions by name into a read-only mapping."""
    registry: Dict[str, ToolDefinition] = {}
    for definition in definitions:
        if definition.name in registry:
            raise ValueError(f"Duplicate tool name: {definition.name}")
        if (definition.operation is None) == (definition.session_call is None):
            raise ValueError(
                f"Tool {definition.name} needs exactly one of operation or session_call"
            )
        registry[definition.name] = definition
    return MappingProxyType(registry)


TOOLS: Mapping[str, ToolDefinition] = build_registry(TOOL_DEFINITIONS)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)


def _validate(tool: ToolDefinition, raw_arguments: Optional[Dict[str, Any]]) -> Result[ToolArgs]:
    try:
        return Ok(tool.arguments.model_validate(raw_arguments or {}))
    except ValidationError as e:
        return Err(ErrorKind.VALIDATION, _validation_message(e))


def render_json(payload: Any, project: Optional[Projection] = None) -> Result[str]:
    """Project the payload and serialize it as 2-space indented JSON."""
    try:
        data = project(payload) if project is not None else payload
        return Ok(json.dumps(data, indent=2, ensure_ascii=False))
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        return Err(ErrorKind.SERIALIZATION, error_message(e))


class ToolDispatcher:
    """Executes tool invocations end to end and always returns an Envelope."""

    def __init__(
        self,
        credential_store: CredentialStore,
        client_factory: MonarchClientFactory,
        registry: Mapping[str, ToolDefinition] = TOOLS,
    ) -> None:
        self._store = credential_store
        self._client_factory = client_factory
        self._registry = registry

    @property
    def tools(self) -> Mapping[str, ToolDefinition]:
        return self._registry

    async def dispatch(
        self,
        tool_name: str,
        session: Session,
        raw_arguments: Optional[Dict[str, Any]] = None,
    ) -> Envelope:
        """Run one tool for one session.

        Args:
            tool_name: Registered tool name.
            session: Session of the calling connection; supplies the user id.
            raw_arguments: Arguments as received from the transport.

        Returns:
            Envelope: success payload, guidance text, or an error envelope.

        Raises:
            UnknownToolError: if tool_name is not registered.
        """
        tool = self._registry.get(tool_name)
        if tool is None:
            raise UnknownToolError(tool_name)

        args = _validate(tool, raw_arguments)
        if isinstance(args, Err):
            return self._envelope(tool, session, args)

        logger.info("Tool %s invoked user_id=%s", tool.name, session.user_id)
        try:
            if tool.session_call is not None:
                return self._envelope(tool, session, await tool.session_call(session, self._store))
            return await self._invoke(tool, session, args.value)
        except Exception as e:
            logger.exception("Unhandled error in tool %s user_id=%s", tool.name, session.user_id)
            return Envelope.error(f"Error {tool.action}: {error_message(e)}")

    async def _invoke(self, tool: ToolDefinition, session: Session, args: ToolArgs) -> Envelope:
        credential = await self._store.resolve_credential(session.user_id)
        if isinstance(credential, Err):
            return self._envelope(tool, session, credential)
        if credential.value is None:
            logger.info("Tool %s called without credential user_id=%s", tool.name, session.user_id)
            return Envelope.success(messages.not_authenticated(session.user_id))

        client = self._client_factory.build(credential.value)
        if isinstance(client, Err):
            return self._envelope(tool, session, client)

        operation = getattr(client.value, tool.operation)
        payload = await operation(**args.model_dump())
        if isinstance(payload, Err):
            return self._envelope(tool, session, payload)

        return self._envelope(tool, session, render_json(payload.value, tool.project))

    def _envelope(self, tool: ToolDefinition, session: Session, result: Result[str]) -> Envelope:
        if isinstance(result, Ok):
            return Envelope.success(result.value)
        if result.kind is ErrorKind.VALIDATION:
            logger.info("Rejected arguments for %s user_id=%s: %s", tool.name, session.user_id, result.message)
            return Envelope.error(f"Invalid arguments for {tool.name}: {result.message}")
        logger.warning(
            "Tool %s failed user_id=%s kind=%s: %s",
            tool.name,
            session.user_id,
            result.kind.value,
            result.message,
        )
        return Envelope.error(f"Error {tool.action}: {result.message}")


# Built once per process; the store's Redis connection is shared.
_dispatcher_instance: ToolDispatcher | None = None


async def get_dispatcher_async() -> ToolDispatcher:
    """Return the process-wide dispatcher, connecting the credential store on first use."""
    global _dispatcher_instance
    if _dispatcher_instance is None:
        store = await get_credential_store_async()
        _dispatcher_instance = ToolDispatcher(
            credential_store=store,
            client_factory=get_client_factory(),
        )
        logger.info("Tool dispatcher ready with %d tools", len(_dispatcher_instance.tools))
    return _dispatcher_instance


def reset_dispatcher() -> None:
    """Drop the cached dispatcher (used on shutdown)."""
    global _dispatcher_instance
    _dispatcher_instance = None
