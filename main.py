from datetime import date, datetime
from typing import List, Optional, Dict, Any

from fastapi import FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

import billing
import ledger
import reports
import repository
from config import get_settings
from database import db, serialize_doc, to_datetime
from errors import LedgerError, NotFoundError, StorageError, ValidationError
from lifecycle import actual_membership_status, remaining_freeze_days, service_view, utcnow
from logger import configure_logging
from schemas import (
    ChangeDateRequest,
    FreezeRequest,
    InvoiceCreate,
    Invoices,
    LedgerAction,
    MemberCreate,
    Members,
    PaymentCreate,
    PaymentMethod,
    Payments,
    PlanCreate,
    Plans,
)

settings = get_settings()
logger = configure_logging(__name__)

# ---------- App ----------

app = FastAPI(title="Gym Back-Office API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------- Errors ----------

@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(PyMongoError)
async def storage_error_handler(request: Request, exc: PyMongoError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    err = StorageError("The database is unavailable, retry the request")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content={
        'success': False,
        'kind': ValidationError.kind,
        'message': "Invalid request",
        'errors': jsonable_encoder(exc.errors()),
    })

@app.get("/")
def root():
    return {"message": "Gym back-office API running"}

# ---------- Plans ----------

@app.get("/plans", response_model=List[Plans])
def list_plans(only_active: bool = False):
    q = {}
    if only_active:
        q["is_active"] = True
    return [serialize_doc(p) for p in db['plans'].find(q).sort("created_at", -1)]

@app.post("/plans", response_model=Plans)
def create_plan(payload: PlanCreate):
    doc = payload.model_dump()
    doc['created_at'] = datetime.utcnow()
    res = db['plans'].insert_one(doc)
    return serialize_doc(db['plans'].find_one({"_id": res.inserted_id}))

# ---------- Members ----------

@app.get("/members", response_model=List[Members])
def list_members(q: Optional[str] = Query(None, description="name/phone/member id search")):
    query: Dict[str, Any] = {}
    if q:
        query = {"$or": [
            {"first_name": {"$regex": q, "$options": "i"}},
            {"last_name": {"$regex": q, "$options": "i"}},
            {"phone": {"$regex": q, "$options": "i"}},
            {"member_id": {"$regex": q, "$options": "i"}},
        ]}
    return [serialize_doc(m) for m in db['members'].find(query).sort("created_at", -1)]

@app.post("/members", response_model=Members)
def create_member(payload: MemberCreate):
    doc = payload.model_dump()
    if doc['member_id']:
        doc['member_id'] = doc['member_id'].strip().upper()
        if db['members'].find_one({'member_id': doc['member_id']}):
            raise ValidationError(f"Member ID {doc['member_id']} already exists")
    else:
        doc['member_id'] = f"MEM-{repository.next_sequence(db, 'member_id'):05d}"
    doc.update({
        'current_plan': None,
        'membership_status': 'pending',
        'total_freeze_days_used': 0,
        'is_active': True,
        'created_at': datetime.utcnow(),
    })
    res = db['members'].insert_one(doc)
    logger.info("Enrolled member %s", doc['member_id'])
    return serialize_doc(db['members'].find_one({"_id": res.inserted_id}))

@app.get("/members/{member_id}", response_model=Members)
def get_member(member_id: str):
    doc = repository.fetch_member(db, member_id)
    if not doc:
        raise NotFoundError("Member not found")
    return serialize_doc(doc)

@app.get("/members/{member_id}/services")
def member_services(member_id: str):
    member = repository.fetch_member(db, member_id)
    if not member:
        raise NotFoundError("Member not found")
    now = utcnow()
    services = []
    invoices = db['invoices'].find({
        'member_id': str(member['_id']),
        'status': {'$nin': list(billing.CLOSED_STATUSES)},
    }).sort('created_at', -1)
    for inv in invoices:
        for idx, item in enumerate(inv.get('items') or []):
            view = service_view(item, now)
            view.update({
                'invoice_id': str(inv['_id']),
                'invoice_number': inv.get('invoice_number'),
                'item_index': idx,
            })
            services.append(view)
    used = member.get('total_freeze_days_used') or 0
    return serialize_doc({
        'success': True,
        'member_id': str(member['_id']),
        'actual_membership_status': actual_membership_status(services, member.get('membership_status')),
        'total_freeze_days_used': used,
        'remaining_freeze_days': remaining_freeze_days(used),
        'services': services,
    })

# ---------- Invoices ----------

@app.get("/invoices", response_model=List[Invoices])
def list_invoices(status: Optional[str] = None, member_id: Optional[str] = None):
    q: Dict[str, Any] = {}
    if status:
        q['status'] = status
    if member_id:
        q['member_id'] = member_id
    return [serialize_doc(billing.invoice_view(i)) for i in db['invoices'].find(q).sort('created_at', -1)]

@app.post("/invoices", response_model=Invoices)
def create_invoice(payload: InvoiceCreate, x_user_id: Optional[str] = Header(None)):
    invoice = billing.create_invoice(db, payload, actor=x_user_id)
    return serialize_doc(billing.invoice_view(invoice))

@app.post("/invoices/change-date")
def change_invoice_item_date(payload: ChangeDateRequest, x_user_id: Optional[str] = Header(None)):
    invoice = ledger.change_item_date(db, payload, actor=x_user_id)
    return {
        'success': True,
        'invoice': serialize_doc(billing.invoice_view(invoice)),
        'message': 'Invoice item dates updated successfully',
    }

@app.post("/invoices/freeze")
def freeze_invoice_item(payload: FreezeRequest, x_user_id: Optional[str] = Header(None)):
    result = ledger.freeze_item(db, payload, actor=x_user_id)
    result['invoice'] = billing.invoice_view(result['invoice'])
    body = serialize_doc(result)
    body['success'] = True
    body['message'] = f"Invoice item frozen for {result['freeze_days']} days successfully"
    return body

@app.get("/invoices/{invoice_id}", response_model=Invoices)
def get_invoice(invoice_id: str):
    invoice = repository.fetch_invoice(db, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice not found")
    return serialize_doc(billing.invoice_view(invoice))

@app.post("/invoices/{invoice_id}/payments")
def record_invoice_payment(invoice_id: str, payload: PaymentCreate, x_user_id: Optional[str] = Header(None)):
    result = billing.record_payment(db, invoice_id, payload, actor=x_user_id)
    result['invoice'] = billing.invoice_view(result['invoice'])
    body = serialize_doc(result)
    body['success'] = True
    return body

# ---------- Payments ----------

@app.get("/payments", response_model=List[Payments])
def list_payments(date_from: Optional[date] = None, date_to: Optional[date] = None, method: Optional[PaymentMethod] = None):
    q: Dict[str, Any] = {}
    if date_from or date_to:
        q['payment_date'] = {}
        if date_from:
            q['payment_date']['$gte'] = to_datetime(date_from)
        if date_to:
            q['payment_date']['$lte'] = to_datetime(date_to)
    if method:
        q['method'] = method
    return [serialize_doc(p) for p in db['payments'].find(q).sort('payment_date', -1)]

# ---------- Reports ----------

@app.get("/reports/freeze-date-change")
def freeze_date_change_report(date_from: Optional[date] = None, date_to: Optional[date] = None, action: Optional[LedgerAction] = None):
    rows = reports.freeze_and_date_change_report(db, date_from, date_to, action)
    return {'success': True, 'entries': serialize_doc(rows)}

@app.get("/reports/pending-collections")
def pending_collections_report():
    result = reports.pending_collections(db)
    return {'success': True, **serialize_doc(result)}

# Health
@app.get("/health")
def health():
    response = {
        "backend": "running",
        "database": "not available",
        "database_name": settings.database_name,
        "collections": [],
    }
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "connected"
    except PyMongoError as e:
        response["database"] = f"error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
