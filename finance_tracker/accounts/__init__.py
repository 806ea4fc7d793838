"""Loan account ledger package."""

from finance_tracker.accounts.ledger import AccountLedger, build_account_summary

__all__ = ["AccountLedger", "build_account_summary"]
