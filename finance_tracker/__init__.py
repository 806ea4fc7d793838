"""
Finance Tracker - Source Package

Personal finance tracker backend: expenses, savings, loan accounts and
balances per payment method.

DESIGN PRINCIPLES:
1. Money must reconcile: aggregate balance == sum of payment method balances
2. Validate before persisting, reconcile after persisting
3. Balances are derived state, owned by the reconciler
4. Every money movement is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
