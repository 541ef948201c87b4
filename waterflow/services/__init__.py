"""Billing services: tariff engine, sequence allocator, credit ledger, ingestion."""

from waterflow.services.credit_ledger import CreditLedger, Settlement, settle
from waterflow.services.invoice_service import InvoiceService, IssuedInvoice
from waterflow.services.reading_service import (
    IngestionResult,
    ReadingIngestionService,
    ReadingService,
)
from waterflow.services.sequence_service import SequenceService
from waterflow.services.tariff_service import compute_base_amount, parse_category

__all__ = [
    "CreditLedger",
    "IngestionResult",
    "InvoiceService",
    "IssuedInvoice",
    "ReadingIngestionService",
    "ReadingService",
    "SequenceService",
    "Settlement",
    "compute_base_amount",
    "parse_category",
    "settle",
]
