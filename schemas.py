"""
Database Schemas for the gym back-office

Each Pydantic model in the first half mirrors a MongoDB collection. The
collection name is the lowercase plural of the class name. The second half
holds the request payloads accepted by the API.
"""
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List, Optional, Literal
from datetime import date, datetime

# Types
MembershipStatus = Literal['active', 'expired', 'frozen', 'cancelled', 'pending']
InvoiceStatus = Literal['draft', 'sent', 'paid', 'partial', 'overdue', 'cancelled', 'refunded']
InvoiceType = Literal['membership', 'renewal', 'upgrade', 'downgrade', 'addon', 'freeze', 'other', 'pro-forma']
PaymentMethod = Literal['cash', 'card', 'upi', 'bank_transfer', 'cheque', 'razorpay', 'other']
LedgerAction = Literal['invoice.item.date_changed', 'invoice.item.frozen']

class Plans(BaseModel):
    id: Optional[str] = None
    name: str
    duration_days: int
    price: float
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

class CurrentPlan(BaseModel):
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

class Members(BaseModel):
    id: Optional[str] = None
    member_id: str = Field(..., description="Display code, e.g. MEM-00001")
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    notes: Optional[str] = None
    current_plan: Optional[CurrentPlan] = None
    membership_status: MembershipStatus = 'pending'
    total_freeze_days_used: int = Field(0, ge=0)
    is_active: bool = True
    created_at: Optional[datetime] = None

class InvoiceItems(BaseModel):
    description: Optional[str] = None
    plan_id: Optional[str] = None
    duration: Optional[str] = None
    quantity: int = 1
    unit_price: Optional[float] = None
    total: float = 0.0
    start_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    number_of_sessions: Optional[int] = None

class Invoices(BaseModel):
    id: Optional[str] = None
    invoice_number: str
    member_id: str
    plan_id: Optional[str] = None
    type: InvoiceType = 'membership'
    status: InvoiceStatus = 'draft'
    items: List[InvoiceItems] = []
    total: float
    total_paid: float = 0.0
    pending: float = 0.0
    due_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

class Payments(BaseModel):
    id: Optional[str] = None
    invoice_id: str
    member_id: Optional[str] = None
    amount: float
    payment_date: datetime
    method: PaymentMethod
    recorded_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

class AuditLogs(BaseModel):
    id: Optional[str] = None
    action: LedgerAction
    entity_type: str = 'Invoice'
    entity_id: str
    member_id: Optional[str] = None
    user_id: Optional[str] = None
    metadata: dict = {}
    created_at: Optional[datetime] = None

class FollowUps(BaseModel):
    id: Optional[str] = None
    member_id: str
    call_type: str = 'renewal-call'
    call_status: str = 'scheduled'
    status: str = 'pending'
    scheduled_time: datetime
    description: Optional[str] = None
    created_at: Optional[datetime] = None

# Requests

class PlanCreate(BaseModel):
    name: str
    duration_days: int = Field(..., gt=0)
    price: float = Field(..., ge=0)
    description: Optional[str] = None
    is_active: bool = True

class MemberCreate(BaseModel):
    member_id: Optional[str] = Field(None, description="Generated when omitted")
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    notes: Optional[str] = None

class InvoiceItemCreate(BaseModel):
    description: str
    plan_id: Optional[str] = None
    duration: Optional[str] = None
    quantity: int = Field(1, gt=0)
    unit_price: Optional[float] = Field(None, ge=0)
    total: Optional[float] = Field(None, ge=0)
    start_date: Optional[date] = None
    expiry_date: Optional[date] = None
    number_of_sessions: Optional[int] = None

class InvoiceCreate(BaseModel):
    member_id: str
    plan_id: Optional[str] = None
    type: InvoiceType = 'membership'
    items: List[InvoiceItemCreate]
    due_date: Optional[date] = None
    notes: Optional[str] = None

class PaymentCreate(BaseModel):
    amount: float
    method: PaymentMethod
    payment_date: Optional[date] = None
    notes: Optional[str] = None

class ChangeDateRequest(BaseModel):
    invoice_id: str
    item_index: int
    start_date: Optional[date] = None
    expiry_date: Optional[date] = None

class FreezeRequest(BaseModel):
    invoice_id: str
    item_index: int
    start_date: date
    end_date: date
    reason: Optional[str] = None
    request_id: Optional[str] = Field(None, description="Client-generated id; a repeated id is not applied twice")
