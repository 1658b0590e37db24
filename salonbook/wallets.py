"""Wallet persistence for the system of record.

:func:`post` stages a ledger entry in the current session without committing,
so a route can commit it together with the appointment change that caused it.
"""
from __future__ import annotations

from flask import current_app

from . import ledger
from .errors import InsufficientFunds
from .extensions import db
from .models import Wallet, WalletTransaction
from .refunds import LedgerEffect, LedgerInstruction


def get_or_create_wallet(user_id: int) -> Wallet:
    wallet = Wallet.query.filter_by(user_id=user_id).first()
    if wallet is None:
        wallet = Wallet(
            user_id=user_id,
            balance_cents=0,
            currency=current_app.config.get("WALLET_CURRENCY", "ZAR"),
        )
        db.session.add(wallet)
        db.session.flush()
    return wallet


def post(
    wallet: Wallet,
    instruction: LedgerInstruction,
    description: str,
    reference: str | None = None,
) -> WalletTransaction | None:
    """Append the transaction described by ``instruction`` to ``wallet``."""
    if instruction.effect == LedgerEffect.NONE or instruction.amount_cents == 0:
        return None

    if (
        instruction.effect == LedgerEffect.DEBIT
        and instruction.amount_cents > wallet.balance_cents
        and not current_app.config.get("ALLOW_WALLET_OVERDRAFT", False)
    ):
        raise InsufficientFunds(wallet.balance_cents, instruction.amount_cents)

    balance_after = ledger.apply(
        wallet.balance_cents, instruction.effect.value, instruction.amount_cents
    )
    transaction = WalletTransaction(
        amount_cents=instruction.amount_cents,
        type=instruction.effect.value,
        description=description,
        reference=reference,
        balance_after_cents=balance_after,
    )
    wallet.transactions.append(transaction)
    wallet.balance_cents = balance_after
    db.session.flush()
    return transaction
