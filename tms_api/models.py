from datetime import datetime
from typing import List, Optional

from sqlalchemy import ForeignKey, UniqueConstraint, and_
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON, Boolean, DateTime, Float, Integer, Numeric, String, Text

from tms_api.db import Base, utcnow

# money columns come back as float, not Decimal
Money = Numeric(12, 2, asdecimal=False)


class TenantRow:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# ---------- CRM ----------

class Customer(TenantRow, Base):
    __tablename__ = "customers"
    name: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


# ---------- Carriers ----------

class Carrier(TenantRow, Base):
    __tablename__ = "carriers"
    mc_number: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    dot_number: Mapped[Optional[str]] = mapped_column(String, nullable=True, index=True)
    legal_name: Mapped[str] = mapped_column(String, nullable=False)
    dba_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    status_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    qualification_tier: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address_line1: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address_line2: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    country: Mapped[str] = mapped_column(String, nullable=False, default="USA")
    primary_contact_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    primary_contact_phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    primary_contact_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    dispatch_phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    dispatch_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tax_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    payment_terms: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    quick_pay_fee_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    w9_on_file: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    equipment_types: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    service_states: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    approved_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    fmcsa_authority_status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    fmcsa_safety_rating: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    fmcsa_out_of_service: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fmcsa_insurance_on_file: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    fmcsa_last_checked: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    insurance_certificates: Mapped[List["InsuranceCertificate"]] = relationship(
        back_populates="carrier", order_by="InsuranceCertificate.expiration_date")


class CarrierDriver(TenantRow, Base):
    __tablename__ = "carrier_drivers"
    carrier_id: Mapped[int] = mapped_column(ForeignKey("carriers.id"), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cdl_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cdl_state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cdl_class: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cdl_expiry: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    medical_card_expiry: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class CarrierTruck(TenantRow, Base):
    __tablename__ = "carrier_trucks"
    carrier_id: Mapped[int] = mapped_column(ForeignKey("carriers.id"), nullable=False, index=True)
    unit_number: Mapped[str] = mapped_column(String, nullable=False)
    truck_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    vin: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    make: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    license_plate: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    license_state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    assigned_driver_id: Mapped[Optional[int]] = mapped_column(ForeignKey("carrier_drivers.id"), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class InsuranceCertificate(TenantRow, Base):
    __tablename__ = "insurance_certificates"
    carrier_id: Mapped[int] = mapped_column(ForeignKey("carriers.id"), nullable=False, index=True)
    insurance_type: Mapped[str] = mapped_column(String, nullable=False)
    insurance_company: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    policy_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    coverage_amount: Mapped[float] = mapped_column(Money, nullable=False)
    deductible: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    effective_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expiration_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")

    carrier: Mapped[Carrier] = relationship(back_populates="insurance_certificates")


class FmcsaComplianceLog(TenantRow, Base):
    __tablename__ = "fmcsa_compliance_logs"
    carrier_id: Mapped[int] = mapped_column(ForeignKey("carriers.id"), nullable=False, index=True)
    dot_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    mc_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    authority_status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    safety_rating: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    out_of_service: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    insurance_on_file: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    insurance_amount: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    raw_response: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    checked_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)


# ---------- Orders, stops, loads ----------

class Order(TenantRow, Base):
    __tablename__ = "orders"
    order_number: Mapped[str] = mapped_column(String, nullable=False, index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False)
    quote_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    customer_reference: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    po_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    bol_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    sales_rep_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    commodity: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    weight_lbs: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    piece_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pallet_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    equipment_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    is_hazmat: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hazmat_class: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    temperature_min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    temperature_max: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    customer_rate: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    fuel_surcharge: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    accessorial_charges: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    total_charges: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    is_hot: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    required_delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    order_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    custom_fields: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    customer: Mapped[Customer] = relationship()
    stops: Mapped[List["Stop"]] = relationship(
        primaryjoin=lambda: and_(Order.id == Stop.order_id, Stop.deleted_at.is_(None)),
        order_by=lambda: Stop.stop_sequence,
        viewonly=True,
    )
    loads: Mapped[List["Load"]] = relationship(
        primaryjoin=lambda: and_(Order.id == Load.order_id, Load.deleted_at.is_(None)),
        viewonly=True,
    )


class Stop(TenantRow, Base):
    __tablename__ = "stops"
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    load_id: Mapped[Optional[int]] = mapped_column(ForeignKey("loads.id"), nullable=True, index=True)
    stop_type: Mapped[str] = mapped_column(String, nullable=False)
    stop_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    facility_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address_line1: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address_line2: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    country: Mapped[str] = mapped_column(String, nullable=False, default="USA")
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    contact_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    appointment_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    appointment_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    appointment_time_start: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    appointment_time_end: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    arrived_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    departed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def appointment_deadline(self) -> Optional[datetime]:
        """Appointment date plus the end of the window ("HH:MM"), if both are known."""
        if self.appointment_date is None or not self.appointment_time_end:
            return None
        try:
            hh, mm = self.appointment_time_end.split(":")[:2]
            return self.appointment_date.replace(hour=int(hh), minute=int(mm), second=0, microsecond=0)
        except ValueError:
            return None


class Load(TenantRow, Base):
    __tablename__ = "loads"
    load_number: Mapped[str] = mapped_column(String, nullable=False, index=True)
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"), nullable=True, index=True)
    carrier_id: Mapped[Optional[int]] = mapped_column(ForeignKey("carriers.id"), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    driver_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    driver_phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    truck_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    trailer_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    carrier_rate: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    accessorial_costs: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    fuel_advance: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    total_cost: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    equipment_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    equipment_length: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    equipment_weight_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    dispatch_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    current_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    current_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    current_city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    current_state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    eta: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_tracking_update: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    order: Mapped[Optional[Order]] = relationship(foreign_keys=[order_id])
    carrier: Mapped[Optional[Carrier]] = relationship()
    stops: Mapped[List[Stop]] = relationship(
        primaryjoin=lambda: and_(Load.id == Stop.load_id, Stop.deleted_at.is_(None)),
        order_by=lambda: Stop.stop_sequence,
        viewonly=True,
    )


class CheckCall(TenantRow, Base):
    __tablename__ = "check_calls"
    load_id: Mapped[int] = mapped_column(ForeignKey("loads.id"), nullable=False, index=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    eta: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class StatusHistory(TenantRow, Base):
    __tablename__ = "status_history"
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    load_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    stop_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    old_status: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    new_status: Mapped[str] = mapped_column(String, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)


# ---------- Load board ----------

class LoadPosting(TenantRow, Base):
    __tablename__ = "load_postings"
    load_id: Mapped[int] = mapped_column(ForeignKey("loads.id"), nullable=False, index=True)
    posting_type: Mapped[str] = mapped_column(String, nullable=False, default="INTERNAL")
    visibility: Mapped[str] = mapped_column(String, nullable=False, default="ALL_CARRIERS")
    show_rate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rate_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    posted_rate: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    rate_min: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    rate_max: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    origin_city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    origin_state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    origin_zip: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    origin_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    origin_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    dest_city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    dest_state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    dest_zip: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    dest_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    dest_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    equipment_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    total_miles: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    weight_lbs: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pickup_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    posted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_refreshed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    auto_refresh: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    refresh_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inquiry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    carrier_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class CarrierLoadView(TenantRow, Base):
    __tablename__ = "carrier_load_views"
    __table_args__ = (UniqueConstraint("posting_id", "carrier_id"),)
    posting_id: Mapped[int] = mapped_column(ForeignKey("load_postings.id"), nullable=False)
    carrier_id: Mapped[int] = mapped_column(ForeignKey("carriers.id"), nullable=False)
    viewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    source: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class LoadBid(TenantRow, Base):
    __tablename__ = "load_bids"
    posting_id: Mapped[int] = mapped_column(ForeignKey("load_postings.id"), nullable=False, index=True)
    load_id: Mapped[int] = mapped_column(ForeignKey("loads.id"), nullable=False)
    carrier_id: Mapped[int] = mapped_column(ForeignKey("carriers.id"), nullable=False, index=True)
    bid_amount: Mapped[float] = mapped_column(Money, nullable=False)
    rate_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    truck_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    driver_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    driver_phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    submitted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    counter_amount: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    counter_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    counter_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False, default="INTERNAL")

    carrier: Mapped[Carrier] = relationship()


# ---------- Quotes ----------

class Quote(TenantRow, Base):
    __tablename__ = "quotes"
    quote_number: Mapped[str] = mapped_column(String, nullable=False, index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("customers.id"), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    service_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    equipment_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    pickup_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    commodity: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    weight_lbs: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pieces: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pallets: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_miles: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    linehaul_rate: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    fuel_surcharge: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    accessorials_total: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    total_amount: Mapped[float] = mapped_column(Money, nullable=False, default=0)
    margin_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")
    sales_rep_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    converted_order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    custom_fields: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    stops: Mapped[List["QuoteStop"]] = relationship(
        order_by="QuoteStop.stop_sequence", cascade="all, delete-orphan")


class QuoteStop(Base):
    __tablename__ = "quote_stops"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quote_id: Mapped[int] = mapped_column(ForeignKey("quotes.id"), nullable=False, index=True)
    stop_type: Mapped[str] = mapped_column(String, nullable=False)
    stop_sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    facility_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address_line1: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address_line2: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    country: Mapped[str] = mapped_column(String, nullable=False, default="USA")
    contact_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)


# ---------- Equipment catalog (read through raw SQL) ----------

class EquipmentMake(Base):
    __tablename__ = "equipment_makes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    popularity_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class EquipmentModel(Base):
    __tablename__ = "equipment_models"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    make_id: Mapped[int] = mapped_column(ForeignKey("equipment_makes.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)


class EquipmentDimension(Base):
    __tablename__ = "equipment_dimensions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(ForeignKey("equipment_models.id"), nullable=False, index=True)
    length_inches: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    width_inches: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    height_inches: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    weight_lbs: Mapped[Optional[float]] = mapped_column(Numeric(10, 2), nullable=True)
    front_image_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    side_image_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class EquipmentRate(Base):
    __tablename__ = "rates"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    model_id: Mapped[int] = mapped_column(ForeignKey("equipment_models.id"), nullable=False, index=True)
    location: Mapped[str] = mapped_column(String, nullable=False)
    dismantling_loading_cost: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    loading_cost: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    blocking_bracing_cost: Mapped[Optional[float]] = mapped_column(Money, nullable=True)


# ---------- Documents ----------

class Document(TenantRow, Base):
    __tablename__ = "documents"
    name: Mapped[str] = mapped_column(String, nullable=False)
    document_type: Mapped[str] = mapped_column(String, nullable=False, default="OTHER")
    file_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    storage_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class DocumentFolder(TenantRow, Base):
    __tablename__ = "document_folders"
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_folder_id: Mapped[Optional[int]] = mapped_column(ForeignKey("document_folders.id"), nullable=True)
    path: Mapped[str] = mapped_column(String, nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)


class FolderDocument(Base):
    __tablename__ = "folder_documents"
    __table_args__ = (UniqueConstraint("folder_id", "document_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    folder_id: Mapped[int] = mapped_column(ForeignKey("document_folders.id"), nullable=False, index=True)
    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id"), nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    added_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    document: Mapped[Document] = relationship()


# ---------- Roles ----------

class Permission(Base):
    __tablename__ = "permissions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    group: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class Role(TenantRow, Base):
    __tablename__ = "roles"
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    permissions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)


# ---------- Workflows ----------

class Workflow(TenantRow, Base):
    __tablename__ = "workflows"
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    trigger_type: Mapped[str] = mapped_column(String, nullable=False, default="MANUAL")
    trigger_event: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    trigger_conditions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, onupdate=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    steps: Mapped[List["WorkflowStep"]] = relationship(
        primaryjoin=lambda: and_(Workflow.id == WorkflowStep.workflow_id, WorkflowStep.deleted_at.is_(None)),
        order_by=lambda: WorkflowStep.step_number,
        viewonly=True,
    )


class WorkflowStep(TenantRow, Base):
    __tablename__ = "workflow_steps"
    workflow_id: Mapped[int] = mapped_column(ForeignKey("workflows.id"), nullable=False, index=True)
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String, nullable=False)
    step_type: Mapped[str] = mapped_column(String, nullable=False)
    action_config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    condition_logic: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=3600)
    retry_config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class WorkflowExecution(TenantRow, Base):
    __tablename__ = "workflow_executions"
    workflow_id: Mapped[int] = mapped_column(ForeignKey("workflows.id"), nullable=False, index=True)
    trigger_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    result: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    step_executions: Mapped[List["StepExecution"]] = relationship(order_by="StepExecution.id")


class StepExecution(TenantRow, Base):
    __tablename__ = "step_executions"
    workflow_execution_id: Mapped[int] = mapped_column(ForeignKey("workflow_executions.id"), nullable=False, index=True)
    workflow_step_id: Mapped[int] = mapped_column(ForeignKey("workflow_steps.id"), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    input_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    output_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    workflow_step: Mapped[WorkflowStep] = relationship()


class ApprovalRequest(TenantRow, Base):
    __tablename__ = "approval_requests"
    request_number: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approval_type: Mapped[str] = mapped_column(String, nullable=False, default="SINGLE")
    entity_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    approver_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    decided_by: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    decision: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    custom_fields: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_by_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
