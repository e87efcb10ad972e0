from datetime import date, datetime

import pytest

import ledger
import reports
from errors import ValidationError
from schemas import ChangeDateRequest, FreezeRequest


def test_freeze_and_date_change_report(db, make_member, make_invoice):
    member = make_member()
    invoice = make_invoice(member)
    ledger.change_item_date(db, ChangeDateRequest(invoice_id=str(invoice['_id']), item_index=0,
                                                  expiry_date=date(2024, 4, 30)))
    ledger.freeze_item(db, FreezeRequest(invoice_id=str(invoice['_id']), item_index=0,
                                         start_date=date(2024, 2, 1), end_date=date(2024, 2, 3), reason='Exams'))

    rows = reports.freeze_and_date_change_report(db)
    assert len(rows) == 2
    assert {r['action'] for r in rows} == {ledger.DATE_CHANGED, ledger.FROZEN}
    assert all(r['member_name'] == 'Asha Rao' for r in rows)

    frozen = reports.freeze_and_date_change_report(db, action=ledger.FROZEN)
    assert len(frozen) == 1
    assert frozen[0]['freeze_days'] == 3
    assert frozen[0]['reason'] == 'Exams'
    assert frozen[0]['new_expiry_date'] == datetime(2024, 5, 3)


def test_freeze_and_date_change_report_date_filter(db, make_member, make_invoice):
    member = make_member()
    db['auditlogs'].insert_many([
        {'action': ledger.FROZEN, 'entity_id': 'x', 'member_id': str(member['_id']),
         'metadata': {'freeze_days': 2}, 'created_at': datetime(2024, 1, 10, 18)},
        {'action': ledger.DATE_CHANGED, 'entity_id': 'y', 'member_id': str(member['_id']),
         'metadata': {}, 'created_at': datetime(2024, 1, 12, 9)},
        {'action': 'invoice.created', 'entity_id': 'z', 'metadata': {}, 'created_at': datetime(2024, 1, 11)},
    ])
    rows = reports.freeze_and_date_change_report(db, date_from=date(2024, 1, 10), date_to=date(2024, 1, 10))
    assert [r['invoice_id'] for r in rows] == ['x']
    rows = reports.freeze_and_date_change_report(db, date_from=date(2024, 1, 1))
    assert [r['invoice_id'] for r in rows] == ['y', 'x']

    with pytest.raises(ValidationError):
        reports.freeze_and_date_change_report(db, action='invoice.created')


def test_pending_collections(db, make_member, make_invoice):
    member = make_member()
    make_invoice(member, invoice_number='INV-000001', total_paid=1000.0, pending=8000.0, status='partial')
    make_invoice(member, invoice_number='INV-000002', total_paid=0.0, pending=9000.0, status='sent')
    make_invoice(member, invoice_number='INV-000003', total_paid=0.0, pending=9000.0, status='cancelled')
    make_invoice(member, invoice_number='INV-000004')

    result = reports.pending_collections(db)
    assert [r['invoice_number'] for r in result['invoices']] == ['INV-000002', 'INV-000001']
    assert result['total_pending'] == 17000.0
    assert result['invoices'][0]['member_name'] == 'Asha Rao'
