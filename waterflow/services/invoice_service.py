"""Invoice issuing: tax, credit settlement, automatic payment and audit trail."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from waterflow.errors import InvalidInputError, NotFoundError
from waterflow.models.customer import Customer
from waterflow.models.invoice import (
    ConsumptionInvoice,
    InfractionInvoice,
    Invoice,
    InvoiceStatus,
)
from waterflow.models.payment import Payment
from waterflow.models.reading import Reading
from waterflow.services.audit_service import AuditService
from waterflow.services.credit_ledger import CreditLedger, Settlement
from waterflow.services.money import ZERO, apply_tax
from waterflow.services.sequence_service import SequenceService

logger = logging.getLogger(__name__)

# Invoices fall due this many days after issue
DUE_DAYS = 15

AUTO_PAYMENT_NOTE = "Automatic payment from available credit"


class IssuedInvoice(NamedTuple):
    """Invoice with the payment created from credit, if any."""

    invoice: Invoice
    payment: Payment | None
    settlement: Settlement


def _invoice_snapshot(invoice: Invoice) -> dict:
    return {
        "invoice_number": invoice.invoice_number,
        "invoice_type": str(getattr(invoice.invoice_type, "value", invoice.invoice_type)),
        "customer_id": invoice.customer_id,
        "base_amount": str(invoice.base_amount),
        "tax_amount": str(invoice.tax_amount),
        "total_amount": str(invoice.total_amount),
        "credit_applied": str(invoice.credit_applied),
        "remaining_debt": str(invoice.remaining_debt),
        "status": str(getattr(invoice.status, "value", invoice.status)),
    }


class InvoiceService:
    """Issue invoices inside the caller's transaction.

    Encapsulates invoice numbering, tax, settlement against available credit
    and the automatic payment record. Does not commit.
    """

    def __init__(self, session: Session, sequences: SequenceService | None = None):
        """Initialize with database session.

        Args:
            session: Session inside an open transaction
            sequences: Sequence allocator sharing the same session (optional)
        """
        self.session = session
        self.sequences = sequences or SequenceService(session)
        self.ledger = CreditLedger(session)

    def issue_consumption_invoice(
        self,
        *,
        customer: Customer,
        reading: Reading,
        base_amount: Decimal,
        actor_id: int,
        issued_at: datetime,
    ) -> IssuedInvoice:
        """Bill a reading.

        ``customer`` must have been loaded with a row lock in this session.
        """
        invoice = ConsumptionInvoice(
            reading_id=reading.id,
            connection_id=reading.connection_id,
        )
        return self._issue(invoice, customer, base_amount, actor_id, issued_at)

    def issue_infraction_invoice(
        self,
        *,
        customer_id: int,
        infraction_reference: str,
        description: str,
        base_amount: Decimal,
        actor_id: int,
        issued_at: datetime | None = None,
    ) -> IssuedInvoice:
        """Bill a penalty for an infraction recorded by inspection staff.

        Raises:
            InvalidInputError: If the reference is empty or the amount negative
            NotFoundError: If the customer does not exist
        """
        if not infraction_reference or not infraction_reference.strip():
            raise InvalidInputError("Infraction reference is required")
        if Decimal(base_amount) < 0:
            raise InvalidInputError(f"Infraction amount cannot be negative: {base_amount}")

        customer = self.session.execute(
            select(Customer).where(Customer.id == customer_id).with_for_update()
        ).scalar_one_or_none()
        if customer is None:
            raise NotFoundError("customer", customer_id)

        invoice = InfractionInvoice(
            infraction_reference=infraction_reference.strip(),
            description=description,
        )
        issued = issued_at or datetime.now(timezone.utc)
        return self._issue(invoice, customer, Decimal(base_amount), actor_id, issued)

    def mark_overdue(self, as_of: datetime, actor_id: int | None = None) -> int:
        """Flag unsettled invoices whose due date has passed.

        Returns:
            Number of invoices moved to OVERDUE
        """
        stmt = select(Invoice).where(
            Invoice.status.in_([InvoiceStatus.PENDING.value, InvoiceStatus.PARTIALLY_PAID.value]),
            Invoice.remaining_debt > 0,
            Invoice.due_date < as_of,
        )
        invoices = self.session.execute(stmt).scalars().all()

        for invoice in invoices:
            before = str(getattr(invoice.status, "value", invoice.status))
            invoice.status = InvoiceStatus.OVERDUE
            AuditService.log(
                self.session,
                entity_type="invoice",
                entity_id=invoice.id,
                action="update",
                actor_id=actor_id,
                before_state={"status": before},
                after_state={"status": InvoiceStatus.OVERDUE.value},
            )

        self.session.flush()
        if invoices:
            logger.info("Marked %d invoices overdue as of %s", len(invoices), as_of.isoformat())
        return len(invoices)

    def _issue(
        self,
        invoice: Invoice,
        customer: Customer,
        base_amount: Decimal,
        actor_id: int,
        issued_at: datetime,
    ) -> IssuedInvoice:
        taxed = apply_tax(base_amount)
        settlement = self.ledger.apply(customer, taxed.total_amount, actor_id=actor_id)

        invoice.invoice_number = self.sequences.next_code(SequenceService.INVOICE)
        invoice.customer_id = customer.id
        invoice.company_id = customer.company_id
        invoice.created_by_id = actor_id
        invoice.base_amount = taxed.base_amount
        invoice.tax_amount = taxed.tax_amount
        invoice.total_amount = taxed.total_amount
        invoice.credit_applied = settlement.credit_used
        invoice.remaining_debt = settlement.remaining_debt
        invoice.status = (
            InvoiceStatus.PAID if settlement.remaining_debt == ZERO else InvoiceStatus.PARTIALLY_PAID
        )
        invoice.issue_date = issued_at
        invoice.due_date = issued_at + timedelta(days=DUE_DAYS)
        invoice.billing_month = issued_at.strftime("%Y-%m")

        self.session.add(invoice)
        self.session.flush()

        AuditService.log(
            self.session,
            entity_type="invoice",
            entity_id=invoice.id,
            action="create",
            actor_id=actor_id,
            after_state=_invoice_snapshot(invoice),
        )

        payment = None
        if settlement.credit_used > 0:
            payment = Payment(
                customer_id=customer.id,
                invoice_id=invoice.id,
                company_id=customer.company_id,
                created_by_id=actor_id,
                amount=settlement.credit_used,
                payment_date=issued_at,
                notes=AUTO_PAYMENT_NOTE,
            )
            self.session.add(payment)
            self.session.flush()

            AuditService.log(
                self.session,
                entity_type="payment",
                entity_id=payment.id,
                action="create",
                actor_id=actor_id,
                after_state={
                    "amount": str(payment.amount),
                    "customer_id": customer.id,
                    "invoice_id": invoice.id,
                },
            )

        logger.debug(
            "Issued %s total=%s credit=%s remaining=%s",
            invoice.invoice_number,
            invoice.total_amount,
            invoice.credit_applied,
            invoice.remaining_debt,
        )
        return IssuedInvoice(invoice=invoice, payment=payment, settlement=settlement)


__all__ = ["DUE_DAYS", "InvoiceService", "IssuedInvoice"]
