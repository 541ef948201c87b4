"""Credit ledger: settle an amount owed against a customer's prepaid balance."""

import logging
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy.orm import Session

from waterflow.models.customer import Customer
from waterflow.services.audit_service import AuditService
from waterflow.services.money import ZERO, round_money

logger = logging.getLogger(__name__)


class Settlement(NamedTuple):
    """Split of an amount owed between credit and remaining debt."""

    credit_used: Decimal
    remaining_debt: Decimal
    new_balance: Decimal


def settle(amount_owed: Decimal, available_credit: Decimal) -> Settlement:
    """Apply available credit to an amount owed.

    - credit covers the amount: settle in full, keep the rest as balance
    - some credit: use all of it, the difference stays as debt
    - no credit: everything stays as debt, balance unchanged

    Args:
        amount_owed: Invoice total including tax, non-negative
        available_credit: Customer's prepaid balance, non-negative

    Returns:
        Settlement with all amounts rounded to cents

    Raises:
        ValueError: If either amount is negative
    """
    owed = round_money(amount_owed)
    credit = round_money(available_credit)
    if owed < 0:
        raise ValueError(f"Amount owed cannot be negative: {owed}")
    if credit < 0:
        raise ValueError(f"Available credit cannot be negative: {credit}")

    if credit >= owed:
        return Settlement(credit_used=owed, remaining_debt=ZERO, new_balance=round_money(credit - owed))
    if credit > 0:
        return Settlement(credit_used=credit, remaining_debt=round_money(owed - credit), new_balance=ZERO)
    return Settlement(credit_used=ZERO, remaining_debt=owed, new_balance=credit)


class CreditLedger:
    """Settle invoices against the customer's stored balance.

    The customer row must have been loaded in the caller's transaction with
    a row lock (see ReadingIngestionService), so the balance read here and
    the balance written back belong to the same isolated transaction.
    """

    def __init__(self, session: Session):
        """Initialize with database session.

        Args:
            session: Session for database operations
        """
        self.session = session

    def apply(self, customer: Customer, amount_owed: Decimal, actor_id: int | None = None) -> Settlement:
        """Settle ``amount_owed`` from ``customer.available_credit``.

        Writes the new balance onto the customer (and audits it) only when
        credit was actually used.
        """
        before = round_money(customer.available_credit or ZERO)
        settlement = settle(amount_owed, before)

        if settlement.credit_used > 0:
            customer.available_credit = settlement.new_balance
            self.session.flush()
            AuditService.log(
                self.session,
                entity_type="customer",
                entity_id=customer.id,
                action="update",
                actor_id=actor_id,
                before_state={"available_credit": str(before)},
                after_state={"available_credit": str(settlement.new_balance)},
            )
            logger.info(
                "Customer %d credit %s -> %s (used %s)",
                customer.id,
                before,
                settlement.new_balance,
                settlement.credit_used,
            )

        return settlement


__all__ = ["CreditLedger", "Settlement", "settle"]
