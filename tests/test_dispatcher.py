import asyncio
import json
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from monarch_mcp.models import Envelope, Session
from monarch_mcp.results import Err, ErrorKind, Ok
from monarch_mcp.services.credential_service import CredentialStore
from monarch_mcp.services.monarch_client import MonarchClientFactory
from monarch_mcp.tools import TOOLS, ToolDispatcher, UnknownToolError
from monarch_mcp.tools.dispatcher import ToolDefinition, build_registry, render_json
from monarch_mcp.tools.schemas import NoArgs

VALID_ARGS: Dict[str, Dict[str, Any]] = {
    "get_accounts": {},
    "get_transactions": {},
    "get_budgets": {},
    "get_cashflow": {"start_date": "2024-01-01", "end_date": "2024-01-31"},
    "get_account_holdings": {"account_id": "acc-1"},
    "create_transaction": {
        "account_id": "acc-1",
        "amount": -12.5,
        "description": "Coffee",
        "date": "2024-02-01",
    },
    "update_transaction": {"transaction_id": "t1", "amount": 20.0},
    "refresh_accounts": {},
}
DATA_TOOLS = sorted(VALID_ARGS)

SESSION = Session(user_id="user-1")


@pytest.fixture
def store() -> MagicMock:
    """Credential store mock; resolves a token by default."""
    m = MagicMock(spec=CredentialStore)
    m.resolve_credential = AsyncMock(return_value=Ok("tok-1"))
    return m


@pytest.fixture
def client() -> MagicMock:
    """MonarchClient mock whose operations return Ok payloads."""
    m = MagicMock()
    m.get_accounts = AsyncMock(return_value=Ok({"accounts": []}))
    m.get_transactions = AsyncMock(return_value=Ok({"allTransactions": {"results": []}}))
    m.get_budgets = AsyncMock(
        return_value=Ok({"budgetData": {"monthlyAmountsByCategory": []}, "categoryGroups": [], "goalsV2": []})
    )
    m.get_cashflow = AsyncMock(return_value=Ok({"summary": [{"sumIncome": 10}]}))
    m.get_account_holdings = AsyncMock(return_value=Ok({"portfolio": {"holdings": []}}))
    m.create_transaction = AsyncMock(return_value=Ok({"createTransaction": {"transaction": {"id": "t9"}}}))
    m.update_transaction = AsyncMock(return_value=Ok({"updateTransaction": {"transaction": {"id": "t1"}}}))
    m.request_accounts_refresh = AsyncMock(return_value=Ok(True))
    return m


@pytest.fixture
def factory(client: MagicMock) -> MagicMock:
    m = MagicMock(spec=MonarchClientFactory)
    m.build.return_value = Ok(client)
    return m


@pytest.fixture
def dispatcher(store: MagicMock, factory: MagicMock) -> ToolDispatcher:
    return ToolDispatcher(credential_store=store, client_factory=factory)


def test_registry_lists_every_tool() -> None:
    assert set(TOOLS) == {
        "setup_authentication",
        "check_auth_status",
        "get_accounts",
        "get_transactions",
        "get_budgets",
        "get_cashflow",
        "get_account_holdings",
        "create_transaction",
        "update_transaction",
        "refresh_accounts",
    }


def test_registry_is_read_only() -> None:
    with pytest.raises(TypeError):
        TOOLS["extra"] = TOOLS["get_accounts"]  # type: ignore[index]


def test_build_registry_rejects_duplicates_and_ambiguous_tools() -> None:
    tool = TOOLS["get_accounts"]
    with pytest.raises(ValueError, match="Duplicate"):
        build_registry([tool, tool])
    with pytest.raises(ValueError, match="exactly one"):
        build_registry([ToolDefinition(name="x", description="", arguments=NoArgs, action="x")])


def test_envelope_constructors() -> None:
    assert Envelope.success("ok") == Envelope(text="ok", is_error=False)
    assert Envelope.error("bad") == Envelope(text="bad", is_error=True)


@pytest.mark.asyncio
async def test_unknown_tool_raises(dispatcher: ToolDispatcher) -> None:
    with pytest.raises(UnknownToolError):
        await dispatcher.dispatch("delete_everything", SESSION, {})


@pytest.mark.asyncio
@pytest.mark.parametrize("tool_name", DATA_TOOLS)
async def test_missing_credential_returns_guidance(
    dispatcher: ToolDispatcher, store: MagicMock, factory: MagicMock, tool_name: str
) -> None:
    """No stored token is a guided-recovery state, not an error."""
    store.resolve_credential.return_value = Ok(None)
    envelope = await dispatcher.dispatch(tool_name, SESSION, VALID_ARGS[tool_name])
    assert envelope.is_error is False
    assert "setup_authentication" in envelope.text
    assert "user-1" in envelope.text
    factory.build.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("tool_name", DATA_TOOLS + ["check_auth_status"])
async def test_store_failure_is_error_envelope(
    dispatcher: ToolDispatcher, store: MagicMock, factory: MagicMock, tool_name: str
) -> None:
    store.resolve_credential.return_value = Err(ErrorKind.STORE, "connection refused")
    envelope = await dispatcher.dispatch(tool_name, SESSION, VALID_ARGS.get(tool_name, {}))
    assert envelope.is_error is True
    assert envelope.text.startswith("Error ")
    assert envelope.text.endswith(": connection refused")
    factory.build.assert_not_called()


@pytest.mark.asyncio
async def test_setup_authentication_never_touches_store(
    dispatcher: ToolDispatcher, store: MagicMock, factory: MagicMock
) -> None:
    envelope = await dispatcher.dispatch("setup_authentication", SESSION)
    assert envelope.is_error is False
    assert "Setup Instructions" in envelope.text
    store.resolve_credential.assert_not_called()
    factory.build.assert_not_called()


@pytest.mark.asyncio
async def test_check_auth_status_reports_presence_not_value(
    dispatcher: ToolDispatcher, factory: MagicMock
) -> None:
    envelope = await dispatcher.dispatch("check_auth_status", SESSION)
    assert envelope.is_error is False
    assert "token found" in envelope.text
    assert "User ID: user-1" in envelope.text
    assert "tok-1" not in envelope.text
    factory.build.assert_not_called()


@pytest.mark.asyncio
async def test_check_auth_status_without_credential(dispatcher: ToolDispatcher, store: MagicMock) -> None:
    store.resolve_credential.return_value = Ok(None)
    envelope = await dispatcher.dispatch("check_auth_status", SESSION)
    assert envelope.is_error is False
    assert envelope.text.startswith("❌ No Monarch Money token found")


@pytest.mark.asyncio
async def test_check_auth_status_is_idempotent(dispatcher: ToolDispatcher) -> None:
    first = await dispatcher.dispatch("check_auth_status", SESSION)
    second = await dispatcher.dispatch("check_auth_status", SESSION)
    assert first == second


@pytest.mark.asyncio
async def test_get_accounts_projection(dispatcher: ToolDispatcher, client: MagicMock, factory: MagicMock) -> None:
    client.get_accounts.return_value = Ok(
        {
            "accounts": [
                {
                    "id": "1",
                    "name": "Checking",
                    "displayName": None,
                    "type": {"name": "depository"},
                    "currentBalance": 100,
                    "institution": {"name": "Bank"},
                    "deactivatedAt": None,
                }
            ]
        }
    )
    envelope = await dispatcher.dispatch("get_accounts", SESSION)
    assert envelope.is_error is False
    factory.build.assert_called_once_with("tok-1")
    accounts = json.loads(envelope.text)
    assert accounts == [
        {
            "id": "1",
            "name": "Checking",
            "type": "depository",
            "balance": 100,
            "institution": "Bank",
            "is_active": True,
        }
    ]
    assert envelope.text == json.dumps(accounts, indent=2)


@pytest.mark.asyncio
async def test_get_transactions_without_results(dispatcher: ToolDispatcher, client: MagicMock) -> None:
    client.get_transactions.return_value = Ok({})
    envelope = await dispatcher.dispatch("get_transactions", SESSION, {})
    assert envelope.is_error is False
    assert json.loads(envelope.text) == []


@pytest.mark.asyncio
async def test_get_transactions_defaults(dispatcher: ToolDispatcher, client: MagicMock) -> None:
    await dispatcher.dispatch("get_transactions", SESSION)
    client.get_transactions.assert_awaited_once_with(
        limit=100, offset=0, start_date=None, end_date=None, account_id=None
    )


@pytest.mark.asyncio
async def test_get_transactions_forwards_filters(dispatcher: ToolDispatcher, client: MagicMock) -> None:
    await dispatcher.dispatch(
        "get_transactions",
        SESSION,
        {"limit": 5, "offset": 10, "start_date": "2024-01-01", "end_date": "2024-01-31", "account_id": "a1"},
    )
    client.get_transactions.assert_awaited_once_with(
        limit=5, offset=10, start_date="2024-01-01", end_date="2024-01-31", account_id="a1"
    )


@pytest.mark.asyncio
async def test_raw_payload_tools_serialize_as_is(dispatcher: ToolDispatcher) -> None:
    envelope = await dispatcher.dispatch("get_cashflow", SESSION, {})
    assert json.loads(envelope.text) == {"summary": [{"sumIncome": 10}]}
    envelope = await dispatcher.dispatch("refresh_accounts", SESSION)
    assert envelope.text == "true"


@pytest.mark.asyncio
async def test_create_transaction_forwards_validated_args(dispatcher: ToolDispatcher, client: MagicMock) -> None:
    envelope = await dispatcher.dispatch("create_transaction", SESSION, VALID_ARGS["create_transaction"])
    assert envelope.is_error is False
    client.create_transaction.assert_awaited_once_with(
        account_id="acc-1",
        amount=-12.5,
        description="Coffee",
        date="2024-02-01",
        category_id=None,
        merchant_name=None,
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "tool_name, arguments",
    [
        ("get_account_holdings", {}),
        ("create_transaction", {"account_id": "a", "amount": 1.0, "description": "x"}),
        ("update_transaction", {"amount": 5.0}),
        ("get_transactions", {"limit": "10"}),
        ("create_transaction", {"account_id": "a", "amount": "1", "description": "x", "date": "2024-01-01"}),
        ("get_transactions", {"limit": 0}),
        ("get_transactions", {"start_date": "2024-01-01"}),
        ("get_cashflow", {"end_date": "2024-01-31"}),
        ("get_accounts", {"verbose": True}),
    ],
)
async def test_invalid_arguments_fail_before_any_io(
    dispatcher: ToolDispatcher, store: MagicMock, factory: MagicMock, tool_name: str, arguments: dict
) -> None:
    envelope = await dispatcher.dispatch(tool_name, SESSION, arguments)
    assert envelope.is_error is True
    assert envelope.text.startswith(f"Invalid arguments for {tool_name}: ")
    store.resolve_credential.assert_not_called()
    factory.build.assert_not_called()


@pytest.mark.asyncio
async def test_upstream_failure_is_error_envelope(dispatcher: ToolDispatcher, client: MagicMock) -> None:
    client.get_budgets.return_value = Err(ErrorKind.UPSTREAM, "401 Unauthorized")
    envelope = await dispatcher.dispatch("get_budgets", SESSION)
    assert envelope == Envelope.error("Error getting budgets: 401 Unauthorized")


@pytest.mark.asyncio
async def test_client_construction_failure_is_error_envelope(
    dispatcher: ToolDispatcher, factory: MagicMock
) -> None:
    factory.build.return_value = Err(ErrorKind.CLIENT, "bad token")
    envelope = await dispatcher.dispatch("get_account_holdings", SESSION, {"account_id": "a1"})
    assert envelope == Envelope.error("Error getting account holdings: bad token")


@pytest.mark.asyncio
async def test_serialization_failure_is_error_envelope(dispatcher: ToolDispatcher, client: MagicMock) -> None:
    client.get_cashflow.return_value = Ok({"when": object()})
    envelope = await dispatcher.dispatch("get_cashflow", SESSION, {})
    assert envelope.is_error is True
    assert envelope.text.startswith("Error getting cashflow: ")


@pytest.mark.asyncio
async def test_unexpected_payload_is_error_envelope(dispatcher: ToolDispatcher, client: MagicMock) -> None:
    client.get_accounts.return_value = Ok({"data": None})
    envelope = await dispatcher.dispatch("get_accounts", SESSION)
    assert envelope.is_error is True
    assert "missing 'accounts'" in envelope.text


@pytest.mark.asyncio
async def test_unexpected_exception_never_escapes(dispatcher: ToolDispatcher, client: MagicMock) -> None:
    client.update_transaction.side_effect = RuntimeError("boom")
    envelope = await dispatcher.dispatch("update_transaction", SESSION, {"transaction_id": "t1"})
    assert envelope == Envelope.error("Error updating transaction: boom")


def test_render_json_indents_two_spaces() -> None:
    assert render_json({"a": [1]}) == Ok('{\n  "a": [\n    1\n  ]\n}')


@pytest.mark.asyncio
async def test_concurrent_users_do_not_share_data() -> None:
    """Two users with distinct tokens each see only their own accounts."""
    tokens = {"alice": "tok-alice", "bob": "tok-bob"}
    store = MagicMock(spec=CredentialStore)

    async def resolve(user_id: str):
        await asyncio.sleep(0)
        return Ok(tokens[user_id])

    store.resolve_credential = AsyncMock(side_effect=resolve)

    def make_api(token: str, timeout: int) -> MagicMock:
        async def get_accounts():
            # Yield so the two invocations interleave mid-call.
            await asyncio.sleep(0.01 if token == "tok-alice" else 0)
            return {"accounts": [{"id": token, "name": f"{token}-checking"}]}

        api = MagicMock()
        api.get_accounts = AsyncMock(side_effect=get_accounts)
        return api

    with patch("monarch_mcp.services.monarch_client.MonarchMoney", side_effect=make_api):
        dispatcher = ToolDispatcher(credential_store=store, client_factory=MonarchClientFactory())
        alice, bob = await asyncio.gather(
            dispatcher.dispatch("get_accounts", Session(user_id="alice")),
            dispatcher.dispatch("get_accounts", Session(user_id="bob")),
        )

    assert [a["id"] for a in json.loads(alice.text)] == ["tok-alice"]
    assert [a["id"] for a in json.loads(bob.text)] == ["tok-bob"]


@pytest.mark.asyncio
async def test_half_open_date_range_is_a_validation_error(dispatcher: ToolDispatcher) -> None:
    envelope = await dispatcher.dispatch("get_transactions", SESSION, {"start_date": "2024-01-01"})
    assert envelope == Envelope.error(
        "Invalid arguments for get_transactions: "
        "arguments: Value error, start_date and end_date must be given together"
    )


@pytest.mark.asyncio
async def test_get_budgets_projects_planning_data(dispatcher: ToolDispatcher, client: MagicMock) -> None:
    client.get_budgets.return_value = Ok(
        {
            "budgetData": {
                "monthlyAmountsByCategory": [
                    {
                        "category": {"id": "c1"},
                        "monthlyAmounts": [
                            {
                                "month": "2024-03-01",
                                "plannedCashFlowAmount": 500.0,
                                "actualAmount": 320.25,
                                "remainingAmount": 179.75,
                            }
                        ],
                    }
                ]
            },
            "categoryGroups": [{"id": "g1", "categories": [{"id": "c1", "name": "Groceries"}]}],
            "goalsV2": [],
        }
    )
    envelope = await dispatcher.dispatch("get_budgets", SESSION)
    assert envelope.is_error is False
    assert json.loads(envelope.text) == [
        {
            "id": "c1",
            "name": "Groceries",
            "amount": 500.0,
            "spent": 320.25,
            "remaining": 179.75,
            "category": "Groceries",
            "period": "2024-03-01",
        }
    ]


@pytest.mark.asyncio
async def test_get_budgets_empty_planning_data(dispatcher: ToolDispatcher) -> None:
    envelope = await dispatcher.dispatch("get_budgets", SESSION)
    assert envelope == Envelope.success("[]")
