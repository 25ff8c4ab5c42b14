"""Argument models for each tool.

Models are strict: a string is never coerced into a number and vice versa,
and unknown keys are rejected.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ToolArgs(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid", frozen=True)


class NoArgs(ToolArgs):
    """Arguments for tools that take none."""


class DateRangeArgs(ToolArgs):
    """Optional date range; Monarch accepts both bounds or neither."""

    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @model_validator(mode="after")
    def _both_or_neither(self) -> "DateRangeArgs":
        if (self.start_date is None) != (self.end_date is None):
            raise ValueError("start_date and end_date must be given together")
        return self


class GetTransactionsArgs(DateRangeArgs):
    limit: int = Field(default=100, ge=1)
    offset: int = Field(default=0, ge=0)
    account_id: Optional[str] = None


class GetCashflowArgs(DateRangeArgs):
    pass


class GetAccountHoldingsArgs(ToolArgs):
    account_id: str


class CreateTransactionArgs(ToolArgs):
    account_id: str
    amount: float
    description: str
    date: str
    category_id: Optional[str] = None
    merchant_name: Optional[str] = None


class UpdateTransactionArgs(ToolArgs):
    transaction_id: str
    amount: Optional[float] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    date: Optional[str] = None
