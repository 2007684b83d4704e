"""
Billing service: the per-appointment invoice (Payment) and its bill lines.

Handles line creation, edits, deletion, total recomputation and the final
bill summary. Bill lines stay editable after an invoice is finalized so
that corrections remain possible; finalize only settles the summary fields.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from core.exceptions import InvalidInputError, NotFoundError
from models import Appointment, Payment, PatientBill, Service
from models.payment import PaymentStatus
from services.domain_events import BillAdded, DomainEvent
from utils.datetime_utils import clinic_now, utc_now

logger = logging.getLogger(__name__)

MONEY_QUANTUM = Decimal("0.01")
MAX_DISCOUNT = Decimal("100")


@dataclass
class BillSummary:
    """
    Presentation view of an invoice after finalize / summary edits.

    payable and discount_amount are derived, never stored.
    """
    payment: Payment
    total_amount: Decimal
    discount: Decimal
    discount_amount: Decimal
    payable: Decimal


def compute_payable(total: Decimal, discount: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Apply a percentage discount to a total.

    Returns:
        Tuple of (discount_amount, payable), both rounded to cents
    """
    discount_amount = (Decimal(total) * Decimal(discount) / Decimal("100")).quantize(MONEY_QUANTUM)
    payable = (Decimal(total) - discount_amount).quantize(MONEY_QUANTUM)
    return discount_amount, payable


def _validate_quantity(quantity: int) -> None:
    if quantity is None or int(quantity) < 1:
        raise InvalidInputError("Quantity must be at least 1")


def _validate_discount(discount: Decimal) -> Decimal:
    value = Decimal(str(discount))
    if value < 0 or value > MAX_DISCOUNT:
        raise InvalidInputError("Discount must be a percentage between 0 and 100")
    return value


class BillingService:
    """Service for invoice and bill line operations."""

    @staticmethod
    def add_bill(
        db: Session,
        appointment_id: int,
        service_id: int,
        quantity: int,
        service_date: datetime,
        now: Optional[datetime] = None
    ) -> Tuple[PatientBill, List[DomainEvent]]:
        """
        Add a bill line to an appointment's invoice.

        The invoice is created on the first line. unit_cost is copied from
        the service's current price.

        Args:
            db: Database session
            appointment_id: Appointment the bill belongs to
            service_id: Catalog service being billed
            quantity: Number of units (>= 1)
            service_date: When the service was performed
            now: Override for the event timestamp (used by tests)

        Returns:
            Tuple of (created bill line, [BillAdded])

        Raises:
            NotFoundError: If the appointment or service does not exist
            InvalidInputError: If quantity is below 1
        """
        _validate_quantity(quantity)

        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found")

        service = db.query(Service).filter(Service.id == service_id).first()
        if not service:
            raise NotFoundError("Service not found")

        payment = BillingService._get_or_create_payment(db, appointment)

        try:
            unit_cost = Decimal(service.price)
            bill = PatientBill(
                payment_id=payment.id,
                service_id=service.id,
                service_date=service_date,
                quantity=int(quantity),
                unit_cost=unit_cost,
                total_cost=(unit_cost * int(quantity)).quantize(MONEY_QUANTUM),
            )
            db.add(bill)
            db.flush()

            BillingService.recompute_total(db, payment.id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Added bill {bill.id} ({service.service_name} x{quantity}) to payment {payment.id} "
            f"for appointment {appointment_id}"
        )
        event = BillAdded(
            appointment_id=appointment_id,
            payment_id=payment.id,
            bill_id=bill.id,
            occurred_at=now or clinic_now(),
        )
        return bill, [event]

    @staticmethod
    def edit_bill(
        db: Session,
        payment_id: int,
        bill_id: int,
        service_id: Optional[int] = None,
        quantity: Optional[int] = None,
        service_date: Optional[datetime] = None
    ) -> PatientBill:
        """
        Partially update a bill line and recompute the invoice total.

        Changing the service re-snapshots unit_cost from the new service.
        total_cost is always recomputed from the resulting unit_cost and
        quantity. Allowed on finalized invoices.

        Raises:
            NotFoundError: If the invoice, line or new service does not exist
            InvalidInputError: If quantity is below 1
        """
        if quantity is not None:
            _validate_quantity(quantity)

        payment = db.query(Payment).filter(Payment.id == payment_id).first()
        if not payment:
            raise NotFoundError("Payment not found")

        bill = db.query(PatientBill).filter(
            PatientBill.id == bill_id,
            PatientBill.payment_id == payment_id
        ).first()
        if not bill:
            raise NotFoundError("Bill not found")

        try:
            if service_id is not None:
                service = db.query(Service).filter(Service.id == service_id).first()
                if not service:
                    raise NotFoundError("Service not found")
                bill.service_id = service.id
                bill.unit_cost = Decimal(service.price)

            if quantity is not None:
                bill.quantity = int(quantity)

            if service_date is not None:
                bill.service_date = service_date

            bill.total_cost = (Decimal(bill.unit_cost) * bill.quantity).quantize(MONEY_QUANTUM)
            db.flush()

            BillingService.recompute_total(db, payment.id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        if payment.finalized:
            # No audit trail exists for post-finalize corrections yet
            logger.warning(f"Bill {bill_id} edited on finalized payment {payment_id}")
        logger.info(f"Edited bill {bill_id} on payment {payment_id}")
        return bill

    @staticmethod
    def delete_bill(db: Session, payment_id: int, bill_id: int) -> None:
        """
        Remove a bill line and recompute the invoice total.

        Raises:
            NotFoundError: If the invoice or line does not exist
        """
        payment = db.query(Payment).filter(Payment.id == payment_id).first()
        if not payment:
            raise NotFoundError("Payment not found")

        bill = db.query(PatientBill).filter(
            PatientBill.id == bill_id,
            PatientBill.payment_id == payment_id
        ).first()
        if not bill:
            raise NotFoundError("Bill not found")

        try:
            db.delete(bill)
            db.flush()
            BillingService.recompute_total(db, payment.id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        if payment.finalized:
            logger.warning(f"Bill {bill_id} deleted from finalized payment {payment_id}")
        logger.info(f"Deleted bill {bill_id} from payment {payment_id}")

    @staticmethod
    def recompute_total(db: Session, payment_id: int) -> Decimal:
        """
        Recompute total_amount as the sum of the invoice's line totals.

        Locks the invoice row first so concurrent line mutations on the
        same invoice serialize, then sums the lines in the same transaction.
        Does not touch discount or finalized. The caller commits.

        Raises:
            NotFoundError: If the invoice does not exist
        """
        payment = db.query(Payment).filter(Payment.id == payment_id).with_for_update().first()
        if not payment:
            raise NotFoundError("Payment not found")

        total = db.query(
            func.coalesce(func.sum(PatientBill.total_cost), 0)
        ).filter(PatientBill.payment_id == payment_id).scalar()

        payment.total_amount = Decimal(str(total)).quantize(MONEY_QUANTUM)
        db.flush()
        return payment.total_amount

    @staticmethod
    def finalize(
        db: Session,
        appointment_id: int,
        discount: Decimal,
        bill_date: datetime
    ) -> BillSummary:
        """
        Generate the final bill for an appointment.

        Sets discount, bill_date and the recomputed total, and marks the
        invoice finalized. Calling it again updates the summary and keeps
        the invoice finalized.

        Returns:
            BillSummary with payable = total - total * discount / 100

        Raises:
            NotFoundError: If the appointment has no invoice yet
            InvalidInputError: If discount is outside [0, 100]
        """
        discount_value = _validate_discount(discount)

        payment = db.query(Payment).filter(Payment.appointment_id == appointment_id).first()
        if not payment:
            raise NotFoundError("No bills to generate final bill")

        try:
            payment.discount = discount_value
            payment.bill_date = bill_date
            payment.finalized = True
            db.flush()
            BillingService.recompute_total(db, payment.id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Finalized payment {payment.id} for appointment {appointment_id} (discount {discount_value}%)")
        return BillingService._summarize(payment)

    @staticmethod
    def edit_final_summary(
        db: Session,
        appointment_id: int,
        discount: Optional[Decimal] = None,
        bill_date: Optional[datetime] = None
    ) -> BillSummary:
        """
        Update discount and/or bill date on an invoice, finalized or not.

        Raises:
            NotFoundError: If the appointment has no invoice
            InvalidInputError: If discount is outside [0, 100]
        """
        discount_value = _validate_discount(discount) if discount is not None else None

        payment = db.query(Payment).filter(Payment.appointment_id == appointment_id).first()
        if not payment:
            raise NotFoundError("Payment not found")

        try:
            if discount_value is not None:
                payment.discount = discount_value
            if bill_date is not None:
                payment.bill_date = bill_date
            db.flush()
            BillingService.recompute_total(db, payment.id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        return BillingService._summarize(payment)

    @staticmethod
    def get_invoice(db: Session, appointment_id: int) -> Optional[Payment]:
        """Invoice for an appointment with its lines and services, or None if nothing was billed yet."""
        # Lines may have changed since the payment was first loaded in this session
        return db.query(Payment).options(
            joinedload(Payment.bills).joinedload(PatientBill.service)
        ).filter(Payment.appointment_id == appointment_id).populate_existing().first()

    @staticmethod
    def get_summary(db: Session, appointment_id: int) -> BillSummary:
        """
        Current summary for an appointment's invoice.

        Raises:
            NotFoundError: If the appointment has no invoice
        """
        payment = BillingService.get_invoice(db, appointment_id)
        if not payment:
            raise NotFoundError("Payment not found")
        return BillingService._summarize(payment)

    @staticmethod
    def list_services(db: Session) -> List[Service]:
        """Service catalog ordered by name."""
        return db.query(Service).order_by(Service.service_name).all()

    @staticmethod
    def _get_or_create_payment(db: Session, appointment: Appointment) -> Payment:
        """
        Find the appointment's invoice or create an empty one.

        appointment_id is unique on payments; if a concurrent request wins
        the insert, re-read its row.
        """
        payment = db.query(Payment).filter(Payment.appointment_id == appointment.id).first()
        if payment:
            return payment

        now = utc_now()
        payment = Payment(
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            bill_date=now,
            payment_date=now,
            discount=Decimal("0"),
            total_amount=Decimal("0"),
            amount_paid=Decimal("0"),
            payment_method="CASH",
            status=PaymentStatus.UNPAID.value,
            finalized=False,
        )
        db.add(payment)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            payment = db.query(Payment).filter(Payment.appointment_id == appointment.id).first()
            if not payment:
                raise
            return payment

        logger.info(f"Created payment {payment.id} for appointment {appointment.id}")
        return payment

    @staticmethod
    def _summarize(payment: Payment) -> BillSummary:
        total = Decimal(payment.total_amount or 0)
        discount = Decimal(payment.discount or 0)
        discount_amount, payable = compute_payable(total, discount)
        return BillSummary(
            payment=payment,
            total_amount=total,
            discount=discount,
            discount_amount=discount_amount,
            payable=payable,
        )
