"""Balance reconciliation package."""

from finance_tracker.balances.classifier import AmountTypeClassifier
from finance_tracker.balances.reconciler import BalanceReconciler
from finance_tracker.balances.stores import AggregateBalanceStore, PaymentMethodBalanceStore

__all__ = [
    "AggregateBalanceStore",
    "AmountTypeClassifier",
    "BalanceReconciler",
    "PaymentMethodBalanceStore",
]
