"""
Report Builder

DESIGN DECISION: Reports are DETERMINISTIC aggregations of stored rows.
Nothing is estimated and nothing is converted: every figure is grouped by
currency, and amounts in different currencies are never added together.

Balances come straight from the accounts (they are the ledger's running
totals); income and expense figures come from the transactions inside
the requested window.
"""

from collections import defaultdict
from datetime import datetime
from typing import Optional

from familybudget.models.ledger import Account, Category, Transaction, TransactionType
from familybudget.models.results import (
    CategoryTotals,
    CurrencyBalance,
    CurrencyTotals,
    ReportsOverview,
)
from familybudget.services.storage import LedgerStorageInterface, TransactionQuery


class ReportBuilder:
    """
    Builds report views from ledger storage.

    GUARANTEES:
    - Only reports real data from storage
    - Empty lists, never invented zero rows, when nothing matches
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def overview(
        self,
        family_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ReportsOverview:
        transactions = await self._storage.list_transactions(
            family_id,
            TransactionQuery(start=start, end=end),
        )
        categories = await self._storage.list_categories(family_id)
        accounts = await self._storage.list_accounts(family_id)

        return ReportsOverview(
            family_id=family_id,
            period_start=start,
            period_end=end,
            totals=self._currency_totals(transactions),
            by_category=self._category_totals(transactions, categories),
            balances=self._balances(accounts),
        )

    def _currency_totals(self, transactions: list[Transaction]) -> list[CurrencyTotals]:
        totals: dict[str, CurrencyTotals] = {}
        for txn in transactions:
            entry = totals.setdefault(txn.currency, CurrencyTotals(currency=txn.currency))
            if txn.type == TransactionType.INCOME:
                entry.income_minor += txn.amount_minor
            else:
                entry.expense_minor += txn.amount_minor
            entry.transaction_count += 1
        return [totals[code] for code in sorted(totals)]

    def _category_totals(
        self,
        transactions: list[Transaction],
        categories: list[Category],
    ) -> list[CategoryTotals]:
        by_id = {c.id: c for c in categories}
        amounts: dict[tuple[str, str], int] = defaultdict(int)
        counts: dict[tuple[str, str], int] = defaultdict(int)

        for txn in transactions:
            key = (txn.category_id, txn.currency)
            amounts[key] += txn.amount_minor
            counts[key] += 1

        rows = []
        for (category_id, currency), amount in amounts.items():
            category = by_id.get(category_id)
            rows.append(CategoryTotals(
                category_id=category_id,
                category_name=category.name if category else "",
                category_type=category.type.value if category else "",
                currency=currency,
                amount_minor=amount,
                transaction_count=counts[(category_id, currency)],
            ))

        # Biggest first within each currency
        rows.sort(key=lambda r: (r.currency, -r.amount_minor, r.category_name))
        return rows

    def _balances(self, accounts: list[Account]) -> list[CurrencyBalance]:
        balances: dict[str, CurrencyBalance] = {}
        for account in accounts:
            if account.is_archived:
                continue
            entry = balances.setdefault(
                account.currency,
                CurrencyBalance(currency=account.currency),
            )
            entry.balance_minor += account.balance_minor
            entry.account_count += 1
        return [balances[code] for code in sorted(balances)]
