"""Wallet ledger arithmetic.

A wallet's transaction log is append-only. Folding it in creation order from
a zero balance must reproduce every recorded ``balance_after`` and end on the
wallet's current balance. These helpers work on any transaction object with
``type``, ``amount_cents`` and ``balance_after_cents`` attributes.
"""
from __future__ import annotations

from typing import Iterable

from .errors import LedgerIntegrityError
from .refunds import LedgerEffect

CREDIT = LedgerEffect.CREDIT.value
DEBIT = LedgerEffect.DEBIT.value


def apply(balance_cents: int, transaction_type: str, amount_cents: int) -> int:
    transaction_type = getattr(transaction_type, "value", transaction_type)
    if amount_cents <= 0:
        raise ValueError("transaction amounts are positive magnitudes")
    if transaction_type == CREDIT:
        return balance_cents + amount_cents
    if transaction_type == DEBIT:
        return balance_cents - amount_cents
    raise ValueError(f"unknown transaction type {transaction_type!r}")


def replay(transactions: Iterable) -> list[int]:
    """Return the running balance after each transaction."""
    balance = 0
    balances = []
    for transaction in transactions:
        balance = apply(balance, transaction.type, transaction.amount_cents)
        balances.append(balance)
    return balances


def verify(balance_cents: int, transactions: Iterable) -> None:
    """Raise :class:`LedgerIntegrityError` unless the log reproduces the balances."""
    transactions = list(transactions)
    running = replay(transactions)
    for transaction, expected in zip(transactions, running):
        if transaction.balance_after_cents != expected:
            raise LedgerIntegrityError(
                f"Transaction {getattr(transaction, 'id', '?')} records balance "
                f"{transaction.balance_after_cents} but replay gives {expected}"
            )
    final = running[-1] if running else 0
    if final != balance_cents:
        raise LedgerIntegrityError(
            f"Wallet balance {balance_cents} does not match replayed balance {final}"
        )
