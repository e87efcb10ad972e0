from datetime import datetime

import mongomock
import pytest
from fastapi.testclient import TestClient

import main


@pytest.fixture
def db():
    return mongomock.MongoClient().gym


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setattr(main, "db", db)
    return TestClient(main.app)


@pytest.fixture
def make_member(db):
    def _make(total_freeze_days_used=0, **fields):
        doc = {
            'member_id': fields.pop('member_id', 'MEM-00001'),
            'first_name': 'Asha',
            'last_name': 'Rao',
            'phone': '+919800000000',
            'membership_status': 'pending',
            'current_plan': None,
            'total_freeze_days_used': total_freeze_days_used,
            'is_active': True,
            'created_at': datetime.utcnow(),
        }
        doc.update(fields)
        doc['_id'] = db['members'].insert_one(doc).inserted_id
        return doc
    return _make


@pytest.fixture
def make_invoice(db):
    def _make(member, items=None, **fields):
        if items is None:
            items = [{
                'description': 'Quarterly membership',
                'duration': '3 months',
                'quantity': 1,
                'unit_price': 9000.0,
                'total': 9000.0,
                'start_date': datetime(2024, 1, 1),
                'expiry_date': datetime(2024, 3, 31),
            }]
        total = sum(i.get('total', 0) for i in items)
        doc = {
            'invoice_number': 'INV-000001',
            'member_id': str(member['_id']),
            'type': 'membership',
            'status': 'paid',
            'items': items,
            'total': total,
            'total_paid': total,
            'pending': 0.0,
            'created_at': datetime.utcnow(),
        }
        doc.update(fields)
        doc['_id'] = db['invoices'].insert_one(doc).inserted_id
        return doc
    return _make
