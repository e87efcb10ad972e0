from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

import repository
from database import to_datetime, to_object_id
from errors import NotFoundError, ValidationError
from lifecycle import renewal_call_time
from schemas import FollowUps, InvoiceCreate, InvoiceItemCreate, PaymentCreate

logger = logging.getLogger(__name__)

CLOSED_STATUSES = ('cancelled', 'refunded')
PAYMENT_TOLERANCE = 0.005


def pending_amount(total: Optional[float], total_paid: Optional[float]) -> float:
    return max(0.0, round(float(total or 0) - float(total_paid or 0), 2))


def invoice_view(invoice: Dict[str, Any]) -> Dict[str, Any]:
    # pending is derived from the totals, the stored copy is only for queries
    d = dict(invoice)
    d['pending'] = pending_amount(d.get('total'), d.get('total_paid'))
    return d


def _item_doc(item: InvoiceItemCreate) -> Dict[str, Any]:
    if item.start_date and item.expiry_date and item.start_date >= item.expiry_date:
        raise ValidationError("Start date must be before expiry date")
    total = item.total
    if total is None:
        total = round(item.quantity * (item.unit_price or 0), 2)
    return {
        'description': item.description,
        'plan_id': item.plan_id,
        'duration': item.duration,
        'quantity': item.quantity,
        'unit_price': item.unit_price,
        'total': total,
        'start_date': to_datetime(item.start_date),
        'expiry_date': to_datetime(item.expiry_date),
        'number_of_sessions': item.number_of_sessions,
    }


def create_invoice(db: Database, payload: InvoiceCreate, actor: Optional[str] = None) -> Dict[str, Any]:
    member = repository.fetch_member(db, payload.member_id)
    if not member:
        raise NotFoundError("Member not found")
    if not payload.items:
        raise ValidationError("An invoice needs at least one item")

    items = [_item_doc(i) for i in payload.items]
    total = round(sum(i['total'] for i in items), 2)
    number = repository.next_sequence(db, 'invoice_number')
    doc = {
        'invoice_number': f"INV-{number:06d}",
        'member_id': str(member['_id']),
        'plan_id': payload.plan_id,
        'type': payload.type,
        'status': 'draft',
        'items': items,
        'total': total,
        'total_paid': 0.0,
        'pending': total,
        'due_date': to_datetime(payload.due_date),
        'notes': payload.notes,
        'created_by': actor,
        'created_at': datetime.utcnow(),
    }
    res = db[repository.INVOICES].insert_one(doc)
    logger.info("Created invoice %s for member %s", doc['invoice_number'], member.get('member_id'))
    return db[repository.INVOICES].find_one({'_id': res.inserted_id})


def schedule_renewal_call(db: Database, member_id: str, expiry_date: datetime) -> Any:
    doc = FollowUps(
        member_id=member_id,
        scheduled_time=renewal_call_time(expiry_date),
        description=f"Renewal call scheduled 7 days before membership expiry ({expiry_date.date().isoformat()})",
        created_at=datetime.utcnow(),
    ).model_dump(exclude={'id'})
    return db[repository.FOLLOW_UPS].insert_one(doc).inserted_id


def activate_membership(db: Database, invoice: Dict[str, Any]) -> None:
    """Make the paid invoice's service the member's current plan."""
    member_id = invoice.get('member_id')
    if not member_id:
        logger.info("No member on invoice %s, skipping membership activation", invoice.get('invoice_number'))
        return

    items = invoice.get('items') or []
    target = next((i for i in items if i.get('start_date') or i.get('expiry_date')), items[0] if items else None)
    updates: Dict[str, Any] = {'membership_status': 'active'}
    end_date = None
    if target is not None:
        end_date = target.get('expiry_date')
        updates['current_plan'] = {
            'plan_id': invoice.get('plan_id') or target.get('plan_id'),
            'plan_name': target.get('description') or 'Membership Plan',
            'start_date': target.get('start_date') or to_datetime(datetime.utcnow().date()),
            'end_date': end_date,
        }

    res = db[repository.MEMBERS].update_one({'_id': to_object_id(member_id)}, {'$set': updates})
    if res.matched_count == 0:
        logger.error("Member %s not found for invoice %s", member_id, invoice.get('invoice_number'))
        return
    if end_date is not None:
        schedule_renewal_call(db, member_id, end_date)
    logger.info("Membership activated for member %s from invoice %s", member_id, invoice.get('invoice_number'))


def record_payment(db: Database, invoice_id: str, payload: PaymentCreate, actor: Optional[str] = None) -> Dict[str, Any]:
    """Apply a payment to an invoice.

    The pending check is repeated inside the increment's filter, so two
    payments racing for the same balance cannot overpay the invoice. The
    payment document is only written once the increment has landed.
    """
    if payload.amount <= 0:
        raise ValidationError("Payment amount must be greater than zero")

    invoice = repository.fetch_invoice(db, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice not found")
    if invoice.get('status') in CLOSED_STATUSES:
        raise ValidationError(f"Cannot record a payment on a {invoice['status']} invoice")
    pending = pending_amount(invoice.get('total'), invoice.get('total_paid'))
    if round(payload.amount, 2) > pending:
        raise ValidationError(f"Payment of {payload.amount:.2f} exceeds pending amount {pending:.2f}")

    amount = float(payload.amount)
    total = float(invoice.get('total') or 0)
    updated = db[repository.INVOICES].find_one_and_update(
        {
            '_id': invoice['_id'],
            'status': {'$nin': list(CLOSED_STATUSES)},
            'total_paid': {'$lte': total - amount + PAYMENT_TOLERANCE},
        },
        {'$inc': {'total_paid': amount}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        # Another payment or a cancellation landed after the read above
        fresh = repository.fetch_invoice(db, invoice_id)
        if fresh is None:
            raise NotFoundError("Invoice not found")
        if fresh.get('status') in CLOSED_STATUSES:
            raise ValidationError(f"Cannot record a payment on a {fresh['status']} invoice")
        pending = pending_amount(fresh.get('total'), fresh.get('total_paid'))
        raise ValidationError(f"Payment of {payload.amount:.2f} exceeds pending amount {pending:.2f}")

    now = datetime.utcnow()
    payment = {
        'invoice_id': str(invoice['_id']),
        'member_id': invoice.get('member_id'),
        'amount': amount,
        'payment_date': to_datetime(payload.payment_date or now.date()),
        'method': payload.method,
        'notes': payload.notes,
        'recorded_by': actor,
        'created_at': now,
    }
    try:
        res = db['payments'].insert_one(payment)
    except PyMongoError:
        db[repository.INVOICES].update_one({'_id': invoice['_id']}, {'$inc': {'total_paid': -amount}})
        raise

    paid = updated.get('total_paid')
    pending = pending_amount(updated.get('total'), paid)
    status = 'paid' if pending == 0 else 'partial'
    fields: Dict[str, Any] = {'pending': pending, 'status': status, 'updated_at': now}
    if status == 'paid':
        fields['paid_date'] = now
    # A later payment owns the status once total_paid has moved past ours
    settled = db[repository.INVOICES].find_one_and_update(
        {'_id': invoice['_id'], 'total_paid': paid},
        {'$set': fields},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Recorded %.2f %s payment on invoice %s, status %s",
                amount, payload.method, invoice.get('invoice_number'), status)

    if settled is not None and status == 'paid':
        activate_membership(db, settled)

    return {
        'payment': db['payments'].find_one({'_id': res.inserted_id}),
        'invoice': settled or repository.fetch_invoice(db, invoice_id),
    }
