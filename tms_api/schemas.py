"""Pydantic request models.

Responses are plain dicts built by ``tms_api.crud.to_dict``; only inbound payloads
are modelled here.
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def coerce_money(v) -> Optional[float]:
    """
    Accept None, "", "$1,900", "1,900.50", "1900", 1900, 1900.0.
    Returns float or None. Non-numeric -> None.
    """
    if v is None:
        return None
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        s = "".join(ch for ch in v.strip() if ch.isdigit() or ch in ".-")
        if s in ("", ".", "-"):
            return None
        try:
            return float(s)
        except ValueError:
            return None
    return None


class Payload(BaseModel):
    """Base for request bodies; timestamps are stored as naive UTC."""

    @field_validator("*", mode="after")
    @classmethod
    def _naive_utc(cls, v):
        if isinstance(v, datetime) and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class MoneyModel(Payload):
    """Base for payloads whose money fields are typed in by humans."""

    money_fields: ClassVar[tuple] = ()

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_money_fields(cls, v, info):
        if info.field_name in cls.money_fields:
            return coerce_money(v)
        return v


# ---------- Customers ----------

class CustomerIn(Payload):
    name: str
    code: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    status: str = "ACTIVE"


class CustomerUpdate(Payload):
    name: Optional[str] = None
    code: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    status: Optional[str] = None


# ---------- Carriers ----------

class InsuranceIn(MoneyModel):
    money_fields: ClassVar[tuple] = ("coverage_amount", "deductible")

    insurance_type: str
    insurance_company: Optional[str] = None
    policy_number: Optional[str] = None
    coverage_amount: float
    deductible: Optional[float] = None
    effective_date: datetime
    expiration_date: datetime


class CarrierIn(Payload):
    legal_name: str
    mc_number: Optional[str] = None
    dot_number: Optional[str] = None
    dba_name: Optional[str] = None
    status: Optional[str] = None
    qualification_tier: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    primary_contact_name: Optional[str] = None
    primary_contact_phone: Optional[str] = None
    primary_contact_email: Optional[str] = None
    dispatch_phone: Optional[str] = None
    dispatch_email: Optional[str] = None
    tax_id: Optional[str] = None
    payment_terms: Optional[str] = None
    quick_pay_fee_percent: Optional[float] = None
    w9_on_file: bool = False
    equipment_types: List[str] = Field(default_factory=list)
    service_states: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    insurance: List[InsuranceIn] = Field(default_factory=list)


class CarrierUpdate(Payload):
    legal_name: Optional[str] = None
    mc_number: Optional[str] = None
    dot_number: Optional[str] = None
    dba_name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    primary_contact_name: Optional[str] = None
    primary_contact_phone: Optional[str] = None
    primary_contact_email: Optional[str] = None
    dispatch_phone: Optional[str] = None
    dispatch_email: Optional[str] = None
    tax_id: Optional[str] = None
    payment_terms: Optional[str] = None
    quick_pay_fee_percent: Optional[float] = None
    w9_on_file: Optional[bool] = None
    equipment_types: Optional[List[str]] = None
    service_states: Optional[List[str]] = None
    notes: Optional[str] = None


class CarrierStatusIn(Payload):
    status: str
    reason: Optional[str] = None


class CarrierTierIn(Payload):
    tier: str


class DriverIn(Payload):
    first_name: str
    last_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    cdl_number: Optional[str] = None
    cdl_state: Optional[str] = None
    cdl_class: Optional[str] = None
    cdl_expiry: Optional[datetime] = None
    medical_card_expiry: Optional[datetime] = None
    status: str = "ACTIVE"
    notes: Optional[str] = None


class DriverUpdate(Payload):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    cdl_number: Optional[str] = None
    cdl_state: Optional[str] = None
    cdl_class: Optional[str] = None
    cdl_expiry: Optional[datetime] = None
    medical_card_expiry: Optional[datetime] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class TruckIn(Payload):
    unit_number: str
    truck_type: Optional[str] = None
    vin: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    license_plate: Optional[str] = None
    license_state: Optional[str] = None
    assigned_driver_id: Optional[int] = None
    status: str = "ACTIVE"


class TruckUpdate(Payload):
    unit_number: Optional[str] = None
    truck_type: Optional[str] = None
    vin: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    license_plate: Optional[str] = None
    license_state: Optional[str] = None
    assigned_driver_id: Optional[int] = None
    status: Optional[str] = None


class OnboardIn(Payload):
    mc_number: Optional[str] = None
    dot_number: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    state: Optional[str] = None


# ---------- Orders & stops ----------

class StopIn(Payload):
    stop_type: str
    stop_sequence: Optional[int] = None
    facility_name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    appointment_required: Optional[bool] = None
    appointment_date: Optional[datetime] = None
    appointment_time_start: Optional[str] = None
    appointment_time_end: Optional[str] = None
    special_instructions: Optional[str] = None


class StopUpdate(Payload):
    stop_type: Optional[str] = None
    stop_sequence: Optional[int] = None
    facility_name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    appointment_required: Optional[bool] = None
    appointment_date: Optional[datetime] = None
    appointment_time_start: Optional[str] = None
    appointment_time_end: Optional[str] = None
    special_instructions: Optional[str] = None
    status: Optional[str] = None


class ReorderIn(Payload):
    stop_ids: List[int]


class AccessorialIn(MoneyModel):
    money_fields: ClassVar[tuple] = ("amount",)

    code: str
    description: Optional[str] = None
    amount: Optional[float] = 0


class OrderIn(MoneyModel):
    money_fields: ClassVar[tuple] = ("customer_rate", "fuel_surcharge", "estimated_carrier_rate")

    customer_id: int
    status: Optional[str] = None
    customer_reference: Optional[str] = None
    po_number: Optional[str] = None
    bol_number: Optional[str] = None
    sales_rep_id: Optional[str] = None
    special_instructions: Optional[str] = None
    internal_notes: Optional[str] = None
    commodity: Optional[str] = None
    weight_lbs: Optional[float] = None
    piece_count: Optional[int] = None
    pallet_count: Optional[int] = None
    equipment_type: Optional[str] = None
    is_hazmat: bool = False
    hazmat_class: Optional[str] = None
    temperature_min: Optional[float] = None
    temperature_max: Optional[float] = None
    customer_rate: Optional[float] = None
    fuel_surcharge: Optional[float] = None
    required_delivery_date: Optional[datetime] = None
    priority: Optional[str] = None
    payment_terms: Optional[str] = None
    estimated_carrier_rate: Optional[float] = None
    accessorials: List[AccessorialIn] = Field(default_factory=list)
    stops: List[StopIn] = Field(default_factory=list)


class OrderUpdate(MoneyModel):
    money_fields: ClassVar[tuple] = ("customer_rate", "fuel_surcharge", "estimated_carrier_rate")

    customer_id: Optional[int] = None
    status: Optional[str] = None
    customer_reference: Optional[str] = None
    po_number: Optional[str] = None
    bol_number: Optional[str] = None
    sales_rep_id: Optional[str] = None
    special_instructions: Optional[str] = None
    internal_notes: Optional[str] = None
    commodity: Optional[str] = None
    weight_lbs: Optional[float] = None
    piece_count: Optional[int] = None
    pallet_count: Optional[int] = None
    equipment_type: Optional[str] = None
    is_hazmat: Optional[bool] = None
    hazmat_class: Optional[str] = None
    temperature_min: Optional[float] = None
    temperature_max: Optional[float] = None
    customer_rate: Optional[float] = None
    fuel_surcharge: Optional[float] = None
    is_hot: Optional[bool] = None
    priority: Optional[str] = None
    payment_terms: Optional[str] = None
    estimated_carrier_rate: Optional[float] = None
    accessorials: Optional[List[AccessorialIn]] = None
    stops: Optional[List[StopIn]] = None


class CloneOrderIn(Payload):
    pickup_date: Optional[datetime] = None


class OrderStatusIn(Payload):
    status: str
    notes: Optional[str] = None


class CancelOrderIn(Payload):
    reason: Optional[str] = None


# ---------- Loads ----------

class LoadIn(MoneyModel):
    money_fields: ClassVar[tuple] = ("carrier_rate", "accessorial_costs", "fuel_advance")

    order_id: Optional[int] = None
    carrier_id: Optional[int] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    truck_number: Optional[str] = None
    trailer_number: Optional[str] = None
    carrier_rate: Optional[float] = None
    accessorial_costs: Optional[float] = None
    fuel_advance: Optional[float] = None
    equipment_type: Optional[str] = None
    equipment_length: Optional[int] = None
    equipment_weight_limit: Optional[int] = None
    dispatch_notes: Optional[str] = None


class LoadUpdate(MoneyModel):
    money_fields: ClassVar[tuple] = ("carrier_rate", "accessorial_costs", "fuel_advance")

    carrier_id: Optional[int] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    truck_number: Optional[str] = None
    trailer_number: Optional[str] = None
    carrier_rate: Optional[float] = None
    accessorial_costs: Optional[float] = None
    fuel_advance: Optional[float] = None
    equipment_type: Optional[str] = None
    equipment_length: Optional[int] = None
    equipment_weight_limit: Optional[int] = None
    status: Optional[str] = None
    dispatch_notes: Optional[str] = None


class AssignCarrierIn(MoneyModel):
    money_fields: ClassVar[tuple] = ("carrier_rate",)

    carrier_id: int
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    truck_number: Optional[str] = None
    trailer_number: Optional[str] = None
    carrier_rate: Optional[float] = None


class LoadStatusIn(Payload):
    status: str
    notes: Optional[str] = None


class LocationIn(Payload):
    latitude: float
    longitude: float
    city: Optional[str] = None
    state: Optional[str] = None
    eta: Optional[datetime] = None


class CheckCallIn(Payload):
    lat: Optional[float] = None
    lng: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    eta: Optional[datetime] = None
    timestamp: Optional[datetime] = None


class RateConfirmationIn(Payload):
    include_accessorials: bool = True
    include_terms: bool = False
    custom_message: Optional[str] = None


# ---------- Load board ----------

class PostingIn(MoneyModel):
    money_fields: ClassVar[tuple] = ("posted_rate", "rate_min", "rate_max")

    load_id: int
    posting_type: str = "INTERNAL"
    visibility: Optional[str] = None
    show_rate: bool = False
    rate_type: Optional[str] = None
    posted_rate: Optional[float] = None
    rate_min: Optional[float] = None
    rate_max: Optional[float] = None
    expires_at: Optional[datetime] = None
    auto_refresh: Optional[bool] = None
    refresh_interval: Optional[int] = None
    carrier_ids: List[int] = Field(default_factory=list)


class PostingUpdate(MoneyModel):
    money_fields: ClassVar[tuple] = ("posted_rate", "rate_min", "rate_max")

    visibility: Optional[str] = None
    show_rate: Optional[bool] = None
    rate_type: Optional[str] = None
    posted_rate: Optional[float] = None
    rate_min: Optional[float] = None
    rate_max: Optional[float] = None
    expires_at: Optional[datetime] = None
    auto_refresh: Optional[bool] = None
    refresh_interval: Optional[int] = None
    carrier_ids: Optional[List[int]] = None


class TrackViewIn(Payload):
    carrier_id: int
    source: Optional[str] = None


class BidIn(MoneyModel):
    money_fields: ClassVar[tuple] = ("bid_amount",)

    posting_id: int
    carrier_id: int
    bid_amount: float
    rate_type: Optional[str] = None
    notes: Optional[str] = None
    truck_number: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    expires_at: Optional[datetime] = None


class BidUpdate(MoneyModel):
    money_fields: ClassVar[tuple] = ("bid_amount",)

    bid_amount: Optional[float] = None
    rate_type: Optional[str] = None
    notes: Optional[str] = None
    truck_number: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None


class RejectBidIn(Payload):
    rejection_reason: Optional[str] = None


class CounterBidIn(MoneyModel):
    money_fields: ClassVar[tuple] = ("counter_amount",)

    counter_amount: float
    counter_notes: Optional[str] = None


# ---------- Quotes ----------

class QuoteStopIn(Payload):
    stop_type: str
    stop_sequence: int
    facility_name: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None


class QuoteIn(MoneyModel):
    money_fields: ClassVar[tuple] = ("linehaul_rate", "fuel_surcharge", "accessorials_total", "total_amount")

    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    service_type: Optional[str] = None
    equipment_type: Optional[str] = None
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    commodity: Optional[str] = None
    weight_lbs: Optional[float] = None
    pieces: Optional[int] = None
    pallets: Optional[int] = None
    total_miles: Optional[float] = None
    linehaul_rate: Optional[float] = None
    fuel_surcharge: Optional[float] = None
    accessorials_total: Optional[float] = None
    total_amount: Optional[float] = None
    margin_percent: Optional[float] = None
    valid_until: Optional[datetime] = None
    internal_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    special_instructions: Optional[str] = None
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    stops: List[QuoteStopIn] = Field(default_factory=list)


class QuoteUpdate(MoneyModel):
    money_fields: ClassVar[tuple] = ("linehaul_rate", "fuel_surcharge", "accessorials_total", "total_amount")

    service_type: Optional[str] = None
    equipment_type: Optional[str] = None
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    commodity: Optional[str] = None
    weight_lbs: Optional[float] = None
    pieces: Optional[int] = None
    total_miles: Optional[float] = None
    linehaul_rate: Optional[float] = None
    fuel_surcharge: Optional[float] = None
    accessorials_total: Optional[float] = None
    total_amount: Optional[float] = None
    margin_percent: Optional[float] = None
    valid_until: Optional[datetime] = None
    internal_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    status: Optional[str] = None
    custom_fields: Optional[Dict[str, Any]] = None


# ---------- Equipment ----------

class EquipmentImagesIn(Payload):
    front_image_url: Optional[str] = None
    side_image_url: Optional[str] = None


# ---------- Documents ----------

class DocumentIn(Payload):
    name: str
    document_type: str = "OTHER"
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    storage_url: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None


class FolderIn(Payload):
    name: str
    description: Optional[str] = None
    parent_folder_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None


class FolderUpdate(Payload):
    name: Optional[str] = None
    description: Optional[str] = None
    parent_folder_id: Optional[int] = None


class FolderDocumentIn(Payload):
    document_id: int


# ---------- Roles ----------

class RoleIn(Payload):
    name: str
    description: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)


class RoleUpdate(Payload):
    name: Optional[str] = None
    description: Optional[str] = None
    permissions: Optional[List[str]] = None


class TogglePermissionIn(Payload):
    permission: str
    checked: bool


class ToggleModuleIn(Payload):
    module: str
    checked: bool


# ---------- Workflows ----------

class WorkflowStepIn(Payload):
    step_number: int
    step_name: Optional[str] = None
    step_type: str
    action_config: Dict[str, Any] = Field(default_factory=dict)
    condition_logic: Optional[str] = None
    timeout_seconds: Optional[int] = None
    retry_config: Dict[str, Any] = Field(default_factory=dict)


class WorkflowIn(Payload):
    name: str
    description: Optional[str] = None
    trigger_type: str = "MANUAL"
    trigger_event: Optional[str] = None
    trigger_conditions: Dict[str, Any] = Field(default_factory=dict)
    status: Optional[str] = None
    steps: List[WorkflowStepIn] = Field(default_factory=list)


class WorkflowUpdate(Payload):
    name: Optional[str] = None
    description: Optional[str] = None
    trigger_type: Optional[str] = None
    trigger_event: Optional[str] = None
    trigger_conditions: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    steps: Optional[List[WorkflowStepIn]] = None


class ExecuteWorkflowIn(Payload):
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    variables: Dict[str, Any] = Field(default_factory=dict)
    approver_ids: List[str] = Field(default_factory=list)


class CancelExecutionIn(Payload):
    reason: Optional[str] = None


class RetryExecutionIn(Payload):
    from_step_number: Optional[int] = None


class ApprovalDecisionIn(Payload):
    comments: Optional[str] = None


class RejectApprovalIn(Payload):
    reason: str
    comments: Optional[str] = None


class DelegateApprovalIn(Payload):
    delegate_to_user_id: str
    reason: Optional[str] = None
