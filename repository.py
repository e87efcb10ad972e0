"""
Persistence collaborator for the service ledger.

Every mutation is a single-document atomic update. The freeze-day debit puts
the budget check into the update filter so two concurrent debits for the same
member cannot both pass it.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from database import to_object_id
from schemas import AuditLogs

MEMBERS = 'members'
INVOICES = 'invoices'
AUDIT_LOGS = 'auditlogs'
FOLLOW_UPS = 'followups'
COUNTERS = 'counters'


def fetch_member(db: Database, member_id: Any) -> Optional[Dict[str, Any]]:
    return db[MEMBERS].find_one({'_id': to_object_id(member_id)})


def fetch_invoice(db: Database, invoice_id: Any) -> Optional[Dict[str, Any]]:
    return db[INVOICES].find_one({'_id': to_object_id(invoice_id)})


def debit_freeze_days(db: Database, member_id: Any, days: int, budget: int) -> Optional[Dict[str, Any]]:
    """Add ``days`` to the member's counter only if the budget still allows it.

    A missing or null counter is first written as 0 so the conditional
    ``$inc`` below can match it. Returns the updated member, or None when the
    conditional update matched nothing (budget no longer sufficient, or the
    member is gone).
    """
    oid = to_object_id(member_id)
    # {field: None} matches both null and missing
    db[MEMBERS].update_one(
        {'_id': oid, 'total_freeze_days_used': None},
        {'$set': {'total_freeze_days_used': 0}},
    )
    return db[MEMBERS].find_one_and_update(
        {'_id': oid, 'total_freeze_days_used': {'$lte': budget - days}},
        {'$inc': {'total_freeze_days_used': days}},
        return_document=ReturnDocument.AFTER,
    )


def credit_freeze_days(db: Database, member_id: Any, days: int) -> None:
    # Only used to undo a debit whose item update did not land
    db[MEMBERS].update_one(
        {'_id': to_object_id(member_id)},
        {'$inc': {'total_freeze_days_used': -days}},
    )


def update_invoice_item(
    db: Database,
    invoice_id: Any,
    item_index: int,
    changes: Dict[str, Optional[datetime]],
    expected: Optional[Dict[str, Optional[datetime]]] = None,
) -> Optional[Dict[str, Any]]:
    """Set fields on one line item.

    ``expected`` holds the values read before the change; the update only
    applies if the stored item still carries them.
    """
    query: Dict[str, Any] = {'_id': to_object_id(invoice_id)}
    for field, value in (expected or {}).items():
        query[f'items.{item_index}.{field}'] = value
    updates = {f'items.{item_index}.{field}': value for field, value in changes.items()}
    updates['updated_at'] = datetime.utcnow()
    return db[INVOICES].find_one_and_update(
        query,
        {'$set': updates},
        return_document=ReturnDocument.AFTER,
    )


def next_sequence(db: Database, name: str) -> int:
    counter = db[COUNTERS].find_one_and_update(
        {'_id': name},
        {'$inc': {'seq': 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(counter['seq'])


def insert_audit_log(db: Database, entry: Dict[str, Any]) -> Any:
    doc = AuditLogs(**entry, created_at=datetime.utcnow()).model_dump(exclude={"id"})
    return db[AUDIT_LOGS].insert_one(doc).inserted_id


def find_audit_log(db: Database, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return db[AUDIT_LOGS].find_one(query)


def reschedule_renewal_calls(db: Database, member_id: Any, scheduled_time: datetime, description: str) -> int:
    res = db[FOLLOW_UPS].update_many(
        {
            'member_id': str(member_id),
            'call_type': 'renewal-call',
            'call_status': 'scheduled',
            'status': 'pending',
        },
        {'$set': {'scheduled_time': scheduled_time, 'description': description}},
    )
    return res.modified_count
