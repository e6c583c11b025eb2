"""ORM models for the banking store.

Holds the bank transaction and transaction rule tables used by
``bank_matching``.
"""

from .banking import Base, BankTransactionRow, TransactionRuleRow

__all__ = [
    "Base",
    "BankTransactionRow",
    "TransactionRuleRow",
]
