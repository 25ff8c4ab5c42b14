"""Reduce upstream Monarch payloads to the fields each tool returns."""

from typing import Any, Dict, List


def _name(value: Any) -> Any:
    return value.get("name") if isinstance(value, dict) else None


def _required_list(payload: Any, key: str) -> List[Dict[str, Any]]:
    items = payload.get(key) if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise ValueError(f"Unexpected Monarch response: missing '{key}' list")
    return items


def project_accounts(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    projected = []
    for account in _required_list(payload, "accounts"):
        is_active = account.get("isActive")
        if is_active is None:
            is_active = not account.get("deactivatedAt")
        projected.append(
            {
                "id": account.get("id"),
                "name": account.get("displayName") or account.get("name"),
                "type": _name(account.get("type")),
                "balance": account.get("currentBalance"),
                "institution": _name(account.get("institution")),
                "is_active": is_active,
            }
        )
    return projected


def project_transactions(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Project transactions; a payload without results yields an empty list."""
    container = (payload or {}).get("allTransactions") or {}
    results = container.get("results") or []
    projected = []
    for txn in results:
        account = txn.get("account")
        projected.append(
            {
                "id": txn.get("id"),
                "date": txn.get("date"),
                "amount": txn.get("amount"),
                "description": txn.get("description") or txn.get("notes") or txn.get("plaidName"),
                "category": _name(txn.get("category")),
                "account": account.get("displayName") if isinstance(account, dict) else None,
                "merchant": _name(txn.get("merchant")),
                "is_pending": bool(txn.get("pending") or txn.get("isPending")),
            }
        )
    return projected


def _category_names(payload: Dict[str, Any]) -> Dict[str, Any]:
    names: Dict[str, Any] = {}
    for group in payload.get("categoryGroups") or []:
        for category in group.get("categories") or []:
            if category.get("id") is not None:
                names[category["id"]] = category.get("name")
    return names


def project_budgets(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten Monarch planning data into one row per category and month.

    `budgetData.monthlyAmountsByCategory` carries only category ids; names come
    from `categoryGroups`. A payload that already holds a `budgets` list is
    projected field by field.
    """
    if isinstance(payload, dict) and isinstance(payload.get("budgets"), list):
        return [
            {
                "id": budget.get("id"),
                "name": budget.get("name"),
                "amount": budget.get("amount"),
                "spent": budget.get("spent"),
                "remaining": budget.get("remaining"),
                "category": _name(budget.get("category")),
                "period": budget.get("period"),
            }
            for budget in payload["budgets"]
        ]

    budget_data = payload.get("budgetData") if isinstance(payload, dict) else None
    if not isinstance(budget_data, dict):
        raise ValueError("Unexpected Monarch response: missing 'budgetData'")
    names = _category_names(payload)

    projected = []
    for row in budget_data.get("monthlyAmountsByCategory") or []:
        category = row.get("category") or {}
        category_id = category.get("id")
        name = category.get("name") or names.get(category_id)
        for monthly in row.get("monthlyAmounts") or []:
            projected.append(
                {
                    "id": category_id,
                    "name": name,
                    "amount": monthly.get("plannedCashFlowAmount"),
                    "spent": monthly.get("actualAmount"),
                    "remaining": monthly.get("remainingAmount"),
                    "category": name,
                    "period": monthly.get("month"),
                }
            )
    return projected
