"""
Jar ledger: jar state, transactions, incomes, aggregation, budgets and goals.
"""

from dailymoney.ledger.aggregation import AggregationEngine, savings
from dailymoney.ledger.budgets import BudgetMonitor, BudgetStore
from dailymoney.ledger.goals import GoalTracker
from dailymoney.ledger.incomes import IncomeStore
from dailymoney.ledger.jar_ledger import Clock, JarLedger
from dailymoney.ledger.transactions import TransactionStore
from dailymoney.ledger.windows import month_window, resolve_month, year_window
from dailymoney.ledger.workflow import AllocationPendingError, IncomeAllocationWorkflow

__all__ = [
    "AggregationEngine",
    "AllocationPendingError",
    "BudgetMonitor",
    "BudgetStore",
    "Clock",
    "GoalTracker",
    "IncomeAllocationWorkflow",
    "IncomeStore",
    "JarLedger",
    "TransactionStore",
    "month_window",
    "resolve_month",
    "savings",
    "year_window",
]
