"""
Result Models

Named results for each flow operation, so callers never have to dig
through ad hoc dictionaries.
"""

from typing import Optional

from pydantic import BaseModel, Field

from familybudget.models.ledger import (
    Account,
    PlannedOperation,
    Transaction,
    UtcDatetime,
    utcnow,
)


class PostedTransaction(BaseModel):
    """A transaction together with its account as updated by the posting."""

    transaction: Transaction
    account: Account


class CompletionResult(BaseModel):
    """Outcome of completing a planned operation."""

    planned_operation: PlannedOperation
    transaction: Transaction
    account: Account


class PlannedOperationListing(BaseModel):
    """Pending and completed planned operations of a family."""

    pending: list[PlannedOperation] = Field(default_factory=list)
    completed: list[PlannedOperation] = Field(default_factory=list)


class BootstrapResult(BaseModel):
    """Records created when seeding a new family."""

    categories_created: int = Field(default=0, ge=0)
    accounts_created: int = Field(default=0, ge=0)


# =============================================================================
# REPORTS
# =============================================================================

class CurrencyTotals(BaseModel):
    """Income/expense totals for one currency. Never converted."""

    currency: str
    income_minor: int = 0
    expense_minor: int = 0
    transaction_count: int = Field(default=0, ge=0)

    @property
    def net_minor(self) -> int:
        return self.income_minor - self.expense_minor


class CategoryTotals(BaseModel):
    """Total for one category in one currency."""

    category_id: str
    category_name: str
    category_type: str
    currency: str
    amount_minor: int = 0
    transaction_count: int = Field(default=0, ge=0)


class CurrencyBalance(BaseModel):
    """Sum of active account balances in one currency."""

    currency: str
    balance_minor: int = 0
    account_count: int = Field(default=0, ge=0)


class ReportsOverview(BaseModel):
    """
    Aggregate view of a family's ledger over an optional window.

    Every figure is grouped by currency; amounts in different currencies
    are never added together.
    """

    family_id: str
    generated_at: UtcDatetime = Field(default_factory=utcnow)
    period_start: Optional[UtcDatetime] = None
    period_end: Optional[UtcDatetime] = None
    totals: list[CurrencyTotals] = Field(default_factory=list)
    by_category: list[CategoryTotals] = Field(default_factory=list)
    balances: list[CurrencyBalance] = Field(default_factory=list)

    @property
    def currencies(self) -> list[str]:
        return sorted({t.currency for t in self.totals} | {b.currency for b in self.balances})
