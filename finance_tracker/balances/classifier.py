"""
Amount Type Classification

Decides whether an amount type moves money in (credit) or out (debit).

DESIGN DECISION: Classification is derived from the amount type's *name*
every time it is needed and is never stored on the entry. Renaming an
amount type therefore reclassifies every historical entry that uses it
the next time one of those entries is reconciled.
"""

from decimal import Decimal

from finance_tracker.models.ledger import AmountType, BalanceClass


CREDIT_KEYWORDS = ("credit", "income")


class AmountTypeClassifier:
    """
    Pure name-based classifier.

    "Credit Card Bill" -> CREDIT, "Salary Income" -> CREDIT,
    "Groceries" -> DEBIT.
    """

    def __init__(self, credit_keywords: tuple[str, ...] = CREDIT_KEYWORDS):
        self._credit_keywords = tuple(k.lower() for k in credit_keywords)

    def classify(self, amount_type: AmountType) -> BalanceClass:
        name = amount_type.name.lower()
        if any(keyword in name for keyword in self._credit_keywords):
            return BalanceClass.CREDIT
        return BalanceClass.DEBIT

    def is_credit(self, amount_type: AmountType) -> bool:
        return self.classify(amount_type) == BalanceClass.CREDIT

    def signed_amount(self, amount: Decimal, amount_type: AmountType) -> Decimal:
        """
        Contribution of an entry to its payment method balance.

        Credit entries decrease the stored balance, debit entries increase it.
        """
        return -amount if self.is_credit(amount_type) else amount
