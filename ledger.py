"""
Membership service lifecycle ledger.

Two write operations over a single invoice line item:

* change-date moves the item's start and/or expiry date;
* freeze extends the item's expiry date by the frozen period and debits the
  member's freeze-day budget.

Both record an audit entry and move the member's pending renewal calls to the
new expiry date.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

import repository
from database import to_datetime
from errors import BudgetExceededError, ConflictError, NotFoundError, ValidationError
from lifecycle import (
    FREEZE_DAY_BUDGET,
    freeze_day_count,
    remaining_freeze_days,
    renewal_call_time,
)
from schemas import ChangeDateRequest, FreezeRequest

logger = logging.getLogger(__name__)

DATE_CHANGED = 'invoice.item.date_changed'
FROZEN = 'invoice.item.frozen'


def _load_invoice(db: Database, invoice_id: str) -> Dict[str, Any]:
    invoice = repository.fetch_invoice(db, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def _get_item(invoice: Dict[str, Any], item_index: int) -> Dict[str, Any]:
    items = invoice.get('items') or []
    if item_index < 0 or item_index >= len(items):
        raise NotFoundError(f"Invoice item {item_index} not found")
    return items[item_index]


def reschedule_renewal_calls(db: Database, member_id: Optional[str], expiry_date) -> int:
    if not member_id or expiry_date is None:
        logger.debug("Skipping renewal call update: missing member or expiry date")
        return 0
    description = (
        f"Renewal call scheduled 7 days before membership expiry ({expiry_date.date().isoformat()})"
    )
    count = repository.reschedule_renewal_calls(db, member_id, renewal_call_time(expiry_date), description)
    logger.info("Rescheduled %d renewal call(s) for member %s", count, member_id)
    return count


def change_item_date(db: Database, request: ChangeDateRequest, actor: Optional[str] = None) -> Dict[str, Any]:
    """Move the date window of one invoice item. Returns the updated invoice."""
    if request.start_date is None and request.expiry_date is None:
        raise ValidationError("Provide a start date, an expiry date, or both")
    if request.start_date is not None and request.expiry_date is not None \
            and request.start_date >= request.expiry_date:
        raise ValidationError("Start date must be before expiry date")

    invoice = _load_invoice(db, request.invoice_id)
    item = _get_item(invoice, request.item_index)

    original_start = item.get('start_date')
    original_expiry = item.get('expiry_date')

    changes = {}
    if request.start_date is not None:
        changes['start_date'] = to_datetime(request.start_date)
    if request.expiry_date is not None:
        changes['expiry_date'] = to_datetime(request.expiry_date)

    new_start = changes.get('start_date', original_start)
    new_expiry = changes.get('expiry_date', original_expiry)
    if new_start is not None and new_expiry is not None and new_start >= new_expiry:
        raise ValidationError("Start date must be before expiry date")

    updated = repository.update_invoice_item(
        db,
        invoice['_id'],
        request.item_index,
        changes,
        expected={'start_date': original_start, 'expiry_date': original_expiry},
    )
    if updated is None:
        raise ConflictError("Invoice item was changed by another request, reload and try again")

    repository.insert_audit_log(db, {
        'action': DATE_CHANGED,
        'entity_type': 'Invoice',
        'entity_id': str(invoice['_id']),
        'member_id': invoice.get('member_id'),
        'user_id': actor,
        'metadata': {
            'invoice_number': invoice.get('invoice_number'),
            'item_index': request.item_index,
            'original_start_date': original_start,
            'original_expiry_date': original_expiry,
            'new_start_date': new_start,
            'new_expiry_date': new_expiry,
        },
    })

    if 'expiry_date' in changes:
        reschedule_renewal_calls(db, invoice.get('member_id'), new_expiry)

    logger.info("Changed dates of item %d on invoice %s", request.item_index, invoice.get('invoice_number'))
    return updated


def _replayed_freeze(db: Database, invoice: Dict[str, Any], entry: Dict[str, Any]) -> Dict[str, Any]:
    member = repository.fetch_member(db, invoice.get('member_id'))
    used = (member or {}).get('total_freeze_days_used') or 0
    metadata = entry.get('metadata') or {}
    return {
        'invoice': invoice,
        'freeze_days': metadata.get('freeze_days'),
        'new_expiry_date': metadata.get('new_expiry_date'),
        'total_freeze_days_used': used,
        'remaining_freeze_days': remaining_freeze_days(used),
        'replayed': True,
    }


def freeze_item(db: Database, request: FreezeRequest, actor: Optional[str] = None) -> Dict[str, Any]:
    """Freeze one invoice item with extension.

    The expiry date moves outward by the inclusive number of frozen days and
    the same number is debited from the member's budget. Either both happen
    or neither does.
    """
    if request.start_date >= request.end_date:
        raise ValidationError("End date must be after start date")
    days = freeze_day_count(request.start_date, request.end_date)
    if days <= 0:
        raise ValidationError("Freeze days must be a positive number")

    invoice = _load_invoice(db, request.invoice_id)
    item = _get_item(invoice, request.item_index)

    if request.request_id:
        previous = repository.find_audit_log(db, {
            'action': FROZEN,
            'entity_id': str(invoice['_id']),
            'metadata.request_id': request.request_id,
        })
        if previous:
            logger.info("Freeze request %s already applied, returning stored outcome", request.request_id)
            return _replayed_freeze(db, invoice, previous)

    original_expiry = item.get('expiry_date')
    if original_expiry is None:
        raise ValidationError("Item does not have an expiry date")

    member_id = invoice.get('member_id')
    member = repository.fetch_member(db, member_id) if member_id else None
    if member is None:
        raise NotFoundError("Member not found for invoice")

    remaining = remaining_freeze_days(member.get('total_freeze_days_used'))
    if days > remaining:
        logger.warning("Freeze of %d days rejected for member %s, %d remaining", days, member_id, remaining)
        raise BudgetExceededError(days, remaining)

    debited = repository.debit_freeze_days(db, member['_id'], days, FREEZE_DAY_BUDGET)
    if debited is None:
        # Another freeze for this member landed between the read and the debit
        fresh = repository.fetch_member(db, member['_id'])
        if fresh is None:
            raise NotFoundError("Member not found for invoice")
        remaining = remaining_freeze_days(fresh.get('total_freeze_days_used'))
        logger.warning("Freeze of %d days lost the budget race for member %s, %d remaining", days, member_id, remaining)
        raise BudgetExceededError(days, remaining)

    new_expiry = original_expiry + timedelta(days=days)
    try:
        updated = repository.update_invoice_item(
            db,
            invoice['_id'],
            request.item_index,
            {'expiry_date': new_expiry},
            expected={'expiry_date': original_expiry},
        )
    except PyMongoError:
        repository.credit_freeze_days(db, member['_id'], days)
        logger.error("Extension of invoice %s failed, returned %d freeze days to member %s",
                     invoice.get('invoice_number'), days, member_id)
        raise
    if updated is None:
        repository.credit_freeze_days(db, member['_id'], days)
        raise ConflictError("Invoice item was changed by another request, reload and try again")

    repository.insert_audit_log(db, {
        'action': FROZEN,
        'entity_type': 'Invoice',
        'entity_id': str(invoice['_id']),
        'member_id': member_id,
        'user_id': actor,
        'metadata': {
            'invoice_number': invoice.get('invoice_number'),
            'item_index': request.item_index,
            'freeze_days': days,
            'start_date': to_datetime(request.start_date),
            'end_date': to_datetime(request.end_date),
            'reason': request.reason or 'No reason provided',
            'request_id': request.request_id,
            'original_expiry_date': original_expiry,
            'new_expiry_date': new_expiry,
        },
    })

    reschedule_renewal_calls(db, member_id, new_expiry)

    used = debited.get('total_freeze_days_used') or 0
    logger.info(
        "Froze item %d on invoice %s for %d days, member %s has used %d",
        request.item_index, invoice.get('invoice_number'), days, member_id, used,
    )
    return {
        'invoice': updated,
        'freeze_days': days,
        'new_expiry_date': new_expiry,
        'total_freeze_days_used': used,
        'remaining_freeze_days': remaining_freeze_days(used),
        'replayed': False,
    }
