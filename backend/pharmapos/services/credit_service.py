# Overview: Credit-sale sub-ledger; partial payments against deferred-payment sales.

"""
Credit Ledger

WHY: Customers may take goods now and settle later, in several payments.
A CreditAccount is opened at checkout for deferred-payment sales and
tracks payments until the balance reaches zero.

DESIGN PRINCIPLES:
- One account per sale; total is the sale total.
- Payments are append-only CreditPayment rows.
- status is derived: PENDING (nothing paid), PARTIAL, PAID (balance 0).
- PAID is terminal; no further payments are accepted.
- Errors carry the current balance so the till can guide a correction.
"""

from __future__ import annotations

import logging

from ..errors import (
    AlreadyPaidError,
    ExceedsBalanceError,
    InvalidAmountError,
    InvalidInputError,
    NotFoundError,
)
from ..extensions import db
from ..models import CreditAccount, CreditPayment, Sale
from ..models.credit import CREDIT_STATUS_PAID, CREDIT_STATUS_PARTIAL, CREDIT_STATUS_PENDING
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_MPESA = "mpesa"
METHOD_CARD = "card"

VALID_SETTLEMENT_METHODS = [METHOD_CASH, METHOD_MPESA, METHOD_CARD]

STATUS_FILTER_UNPAID = "UNPAID"


def derive_status(paid_cents: int, balance_cents: int) -> str:
    if balance_cents == 0:
        return CREDIT_STATUS_PAID
    if paid_cents == 0:
        return CREDIT_STATUS_PENDING
    return CREDIT_STATUS_PARTIAL


def open_account(sale: Sale, *, commit: bool = True) -> CreditAccount:
    """Open a PENDING account for the full sale total."""
    account = CreditAccount(
        sale_id=sale.id,
        customer_name=sale.customer_name,
        customer_phone=sale.customer_phone,
        total_cents=sale.total_cents,
        paid_cents=0,
        balance_cents=sale.total_cents,
        status=derive_status(0, sale.total_cents),
        created_at=utcnow(),
    )
    db.session.add(account)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    logger.info("Opened credit account %s for sale %s (%s cents)", account.id, sale.id, sale.total_cents)
    return account


def get_account(account_id: int) -> CreditAccount:
    account = db.session.get(CreditAccount, account_id)
    if account is None:
        raise NotFoundError("credit account not found", details={"credit_account_id": account_id})
    return account


def record_payment(
    account_id: int,
    amount_cents: int,
    method: str,
    received_by: str | None = None,
) -> CreditAccount:
    """
    Apply a payment to a credit account.

    Raises:
        InvalidAmountError: amount is not a positive integer number of cents
        AlreadyPaidError: account is already PAID
        ExceedsBalanceError: amount is more than the outstanding balance
    """
    def _op():
        method_norm = (method or "").strip().lower()
        if method_norm not in VALID_SETTLEMENT_METHODS:
            raise InvalidInputError(
                f"Invalid payment method: {method}. Must be one of {VALID_SETTLEMENT_METHODS}"
            )

        account = lock_for_update(db.session.query(CreditAccount).filter_by(id=account_id)).first()
        if account is None:
            raise NotFoundError("credit account not found", details={"credit_account_id": account_id})

        balance = {"balance_cents": account.balance_cents, "status": account.status}

        if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
            raise InvalidAmountError("Payment amount must be positive", details=balance)

        if account.status == CREDIT_STATUS_PAID:
            raise AlreadyPaidError("Credit account is already fully paid", details=balance)

        if amount_cents > account.balance_cents:
            raise ExceedsBalanceError(
                "Payment exceeds outstanding balance",
                details={**balance, "amount_cents": amount_cents},
            )

        account.paid_cents += amount_cents
        account.balance_cents = account.total_cents - account.paid_cents
        account.status = derive_status(account.paid_cents, account.balance_cents)
        account.updated_at = utcnow()
        account.payments.append(CreditPayment(
            amount_cents=amount_cents,
            method=method_norm,
            received_by=received_by,
            created_at=account.updated_at,
        ))

        db.session.commit()
        if account.status == CREDIT_STATUS_PAID:
            logger.info("Credit account %s settled", account.id)
        return account

    return run_with_retry(_op)


def list_accounts(status: str | None = None) -> list[CreditAccount]:
    """List accounts newest first; status UNPAID means PENDING or PARTIAL."""
    q = CreditAccount.query
    if status:
        wanted = status.strip().upper()
        if wanted == STATUS_FILTER_UNPAID:
            q = q.filter(CreditAccount.status.in_([CREDIT_STATUS_PENDING, CREDIT_STATUS_PARTIAL]))
        elif wanted in (CREDIT_STATUS_PENDING, CREDIT_STATUS_PARTIAL, CREDIT_STATUS_PAID):
            q = q.filter(CreditAccount.status == wanted)
        else:
            raise InvalidInputError(f"Invalid credit status filter: {status}")
    return q.order_by(CreditAccount.created_at.desc(), CreditAccount.id.desc()).all()


def credit_summary() -> dict:
    accounts = CreditAccount.query.all()
    summary = {
        "total_credit_cents": 0,
        "total_paid_cents": 0,
        "total_outstanding_cents": 0,
        "pending_count": 0,
        "partial_count": 0,
        "paid_count": 0,
    }
    for account in accounts:
        summary["total_credit_cents"] += account.total_cents
        summary["total_paid_cents"] += account.paid_cents
        summary["total_outstanding_cents"] += account.balance_cents
        summary[f"{account.status.lower()}_count"] += 1
    return summary
