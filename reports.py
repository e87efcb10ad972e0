from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from pymongo.database import Database

import repository
from billing import CLOSED_STATUSES, pending_amount
from database import to_datetime, to_object_id
from errors import ValidationError
from ledger import DATE_CHANGED, FROZEN

LEDGER_ACTIONS = (DATE_CHANGED, FROZEN)


def _member_names(db: Database, member_ids) -> Dict[str, str]:
    ids = [to_object_id(m) for m in set(member_ids) if m]
    names = {}
    for m in db[repository.MEMBERS].find({'_id': {'$in': ids}}):
        names[str(m['_id'])] = f"{m.get('first_name', '')} {m.get('last_name', '')}".strip()
    return names


def freeze_and_date_change_report(
    db: Database,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    action: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Audit trail of ledger changes, newest first."""
    if action and action not in LEDGER_ACTIONS:
        raise ValidationError(f"Unknown action {action!r}")
    q: Dict[str, Any] = {'action': action or {'$in': list(LEDGER_ACTIONS)}}
    if date_from or date_to:
        q['created_at'] = {}
        if date_from:
            q['created_at']['$gte'] = to_datetime(date_from)
        if date_to:
            # date_to is inclusive
            q['created_at']['$lt'] = to_datetime(date_to + timedelta(days=1))

    entries = list(db[repository.AUDIT_LOGS].find(q).sort('created_at', -1))
    names = _member_names(db, [e.get('member_id') for e in entries])
    rows = []
    for e in entries:
        meta = e.get('metadata') or {}
        rows.append({
            'id': str(e['_id']),
            'action': e['action'],
            'invoice_id': e.get('entity_id'),
            'invoice_number': meta.get('invoice_number'),
            'member_id': e.get('member_id'),
            'member_name': names.get(e.get('member_id') or ''),
            'item_index': meta.get('item_index'),
            'freeze_days': meta.get('freeze_days'),
            'reason': meta.get('reason'),
            'original_start_date': meta.get('original_start_date'),
            'new_start_date': meta.get('new_start_date'),
            'original_expiry_date': meta.get('original_expiry_date'),
            'new_expiry_date': meta.get('new_expiry_date'),
            'user_id': e.get('user_id'),
            'created_at': e.get('created_at'),
        })
    return rows


def pending_collections(db: Database) -> Dict[str, Any]:
    q = {'status': {'$nin': list(CLOSED_STATUSES)}, 'pending': {'$gt': 0}}
    invoices = list(db[repository.INVOICES].find(q).sort('pending', -1))
    names = _member_names(db, [i.get('member_id') for i in invoices])
    rows = []
    for inv in invoices:
        rows.append({
            'id': str(inv['_id']),
            'invoice_number': inv.get('invoice_number'),
            'member_id': inv.get('member_id'),
            'member_name': names.get(inv.get('member_id') or ''),
            'status': inv.get('status'),
            'total': inv.get('total'),
            'total_paid': inv.get('total_paid', 0.0),
            'pending': pending_amount(inv.get('total'), inv.get('total_paid')),
            'due_date': inv.get('due_date'),
        })
    return {
        'invoices': rows,
        'total_pending': round(sum(r['pending'] for r in rows), 2),
    }
