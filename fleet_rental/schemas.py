"""
Validation schemas for incoming data.

Each writable table has a ``*Create`` schema (required fields enforced) and
an ``*Update`` schema (every field optional, only the fields sent are
applied; ``null`` is refused where the column cannot hold it). Dates accept
``YYYY-MM-DD`` or ``DD/MM/YYYY``.
"""

from datetime import date
from typing import Any, ClassVar, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ValidationFailed, describe_validation_error
from .formatting import parse_date

LeaseStatusField = Literal['draft', 'pending', 'active', 'closed', 'completed',
                           'cancelled', 'terminated', 'expired', 'archived']
VehicleStatusField = Literal['available', 'rented', 'maintenance', 'reserved',
                             'sold', 'damaged', 'inactive']
PaymentStatusField = Literal['pending', 'paid', 'partially_paid', 'overdue', 'cancelled', 'refunded']
PaymentTypeField = Literal['rent', 'deposit', 'late_fee', 'fine', 'other']
FinePaymentStatusField = Literal['pending', 'paid', 'disputed', 'refunded']
MaintenanceStatusField = Literal['scheduled', 'in_progress', 'completed', 'cancelled', 'overdue']
MaintenanceTypeField = Literal['routine', 'repair', 'inspection', 'emergency', 'recall', 'other']
MaintenancePriorityField = Literal['low', 'medium', 'high', 'critical']
LegalCaseStatusField = Literal['pending_reminder', 'in_legal_process', 'escalated', 'resolved', 'closed']
LegalCaseTypeField = Literal['payment_default', 'contract_breach', 'vehicle_damage',
                             'traffic_violation', 'other']
LegalPriorityField = Literal['low', 'medium', 'high', 'urgent']
AnalysisTypeField = Literal['status_recommendation', 'payment_prediction', 'risk_assessment',
                            'vehicle_recommendation', 'agreement_health']


def validate(schema, data):
    """Validate ``data`` against ``schema`` or raise :class:`ValidationFailed`."""
    try:
        return schema.model_validate(data or {})
    except ValidationError as exc:
        raise ValidationFailed(describe_validation_error(exc)) from exc


class Schema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra='ignore')


class PartialSchema(Schema):
    # fields that may be left out but never sent as null
    not_null: ClassVar[tuple] = ()

    @field_validator('*')
    @classmethod
    def reject_null(cls, value, info):
        if value is None and info.field_name in cls.not_null:
            raise ValueError('may not be null')
        return value


def _date_field(v):
    return parse_date(v)


def _plate_field(v):
    return ' '.join(v.upper().split()) if v else v


def _email_field(v):
    if v is None:
        return None
    if '@' not in v or '.' not in v.split('@')[-1]:
        raise ValueError('Invalid email format')
    return v.lower()


# ---------------------------------------------------------------------------
# Vehicles

class VehicleCreate(Schema):
    make: str = Field(min_length=1)
    model: str = Field(min_length=1)
    license_plate: str = Field(min_length=1)
    year: Optional[int] = Field(default=None, ge=1950, le=2100)
    vin: Optional[str] = None
    color: Optional[str] = None
    status: VehicleStatusField = 'available'
    mileage: Optional[int] = Field(default=None, ge=0)
    rent_amount: Optional[float] = Field(default=None, ge=0)
    purchase_price: Optional[float] = Field(default=None, ge=0)
    initial_investment: Optional[float] = Field(default=None, ge=0)
    registration_expiry: Optional[date] = None
    insurance_expiry: Optional[date] = None

    parse_dates = field_validator('registration_expiry', 'insurance_expiry', mode='before')(_date_field)
    normalise_plate = field_validator('license_plate')(_plate_field)


class VehicleUpdate(PartialSchema):
    not_null = ('make', 'model', 'license_plate', 'status')

    make: Optional[str] = Field(default=None, min_length=1)
    model: Optional[str] = Field(default=None, min_length=1)
    license_plate: Optional[str] = Field(default=None, min_length=1)
    year: Optional[int] = Field(default=None, ge=1950, le=2100)
    vin: Optional[str] = None
    color: Optional[str] = None
    status: Optional[VehicleStatusField] = None
    mileage: Optional[int] = Field(default=None, ge=0)
    rent_amount: Optional[float] = Field(default=None, ge=0)
    purchase_price: Optional[float] = Field(default=None, ge=0)
    initial_investment: Optional[float] = Field(default=None, ge=0)
    registration_expiry: Optional[date] = None
    insurance_expiry: Optional[date] = None

    parse_dates = field_validator('registration_expiry', 'insurance_expiry', mode='before')(_date_field)
    normalise_plate = field_validator('license_plate')(_plate_field)


class ExpenseCreate(Schema):
    model_config = ConfigDict(str_strip_whitespace=True, extra='ignore', populate_by_name=True)

    category: str = Field(min_length=1)
    description: Optional[str] = None
    cost: float = Field(ge=0)
    recurring: bool = False
    next_due_date: Optional[date] = None
    expense_date: Optional[date] = Field(default=None, alias='date')

    parse_dates = field_validator('expense_date', 'next_due_date', mode='before')(_date_field)


# ---------------------------------------------------------------------------
# Customers

class CustomerCreate(Schema):
    full_name: str = Field(min_length=1)
    email: Optional[str] = None
    phone_number: Optional[str] = None
    driver_license: Optional[str] = None
    nationality: Optional[str] = None
    address: Optional[str] = None
    status: Literal['active', 'inactive', 'blacklisted'] = 'active'

    check_email = field_validator('email')(_email_field)


class CustomerUpdate(PartialSchema, CustomerCreate):
    not_null = ('full_name', 'status')

    full_name: Optional[str] = Field(default=None, min_length=1)
    status: Optional[Literal['active', 'inactive', 'blacklisted']] = None


# ---------------------------------------------------------------------------
# Agreements

class AgreementCreate(Schema):
    customer_id: int
    vehicle_id: int
    start_date: date
    end_date: date
    status: LeaseStatusField = 'draft'
    agreement_number: Optional[str] = None
    agreement_type: str = 'short_term'
    rent_amount: float = Field(gt=0)
    deposit_amount: float = Field(default=0.0, ge=0)
    total_amount: Optional[float] = Field(default=None, gt=0)
    daily_late_fee: Optional[float] = Field(default=None, ge=0)
    rent_due_day: int = Field(default=1, ge=1, le=28)
    notes: Optional[str] = None

    parse_dates = field_validator('start_date', 'end_date', mode='before')(_date_field)

    @model_validator(mode='after')
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError('End date must be after start date')
        return self


class AgreementUpdate(PartialSchema):
    not_null = ('start_date', 'end_date')

    customer_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    agreement_type: Optional[str] = None
    rent_amount: Optional[float] = Field(default=None, gt=0)
    deposit_amount: Optional[float] = Field(default=None, ge=0)
    total_amount: Optional[float] = Field(default=None, gt=0)
    daily_late_fee: Optional[float] = Field(default=None, ge=0)
    rent_due_day: Optional[int] = Field(default=None, ge=1, le=28)
    notes: Optional[str] = None

    parse_dates = field_validator('start_date', 'end_date', mode='before')(_date_field)


class AgreementImportRow(Schema):
    customer_id: int
    vehicle_id: int
    start_date: date
    end_date: date
    rent_amount: float = Field(ge=0)
    deposit_amount: float = Field(default=0.0, ge=0)
    agreement_type: str = 'short_term'
    notes: str = ''

    parse_dates = field_validator('start_date', 'end_date', mode='before')(_date_field)


class CustomerImportRow(Schema):
    full_name: str = Field(min_length=1)
    email: Optional[str] = None
    phone_number: Optional[str] = None
    driver_license: Optional[str] = None
    nationality: Optional[str] = None
    address: Optional[str] = None

    check_email = field_validator('email')(_email_field)


class TemplateCreate(Schema):
    name: str = Field(min_length=1)
    content: str = Field(min_length=1)
    agreement_type: str = 'short_term'
    is_active: bool = True


# ---------------------------------------------------------------------------
# Payments and pricing

class PaymentCreate(Schema):
    amount: float = Field(gt=0)
    type: PaymentTypeField = 'rent'
    description: Optional[str] = None
    due_date: Optional[date] = None
    status: PaymentStatusField = 'pending'

    parse_dates = field_validator('due_date', mode='before')(_date_field)


class PaymentUpdate(PartialSchema):
    not_null = ('amount', 'amount_paid', 'status')

    amount: Optional[float] = Field(default=None, gt=0)
    amount_paid: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    due_date: Optional[date] = None
    status: Optional[PaymentStatusField] = None
    payment_method: Optional[str] = None

    parse_dates = field_validator('due_date', mode='before')(_date_field)


class PaymentRecord(Schema):
    amount: float = Field(gt=0)
    payment_date: Optional[date] = None
    payment_method: str = 'cash'

    parse_dates = field_validator('payment_date', mode='before')(_date_field)


class PricingModelCreate(Schema):
    slug: str = Field(min_length=1, max_length=40)
    name: str = Field(min_length=1)
    base_multiplier: float = Field(default=1.0, gt=0)
    seasonal_adjustment: float = Field(default=0.3, ge=0)
    demand_adjustment: float = Field(default=0.5, ge=0)
    description: Optional[str] = None


class InstallmentRequest(Schema):
    total_amount: float = Field(gt=0)
    installments: int = Field(gt=0, le=120)
    interest_rate: float = Field(default=0.0, ge=0)
    start_date: Optional[date] = None

    parse_dates = field_validator('start_date', mode='before')(_date_field)


# ---------------------------------------------------------------------------
# Maintenance, fines and legal cases

class MaintenanceCreate(Schema):
    vehicle_id: int
    title: str = Field(min_length=1)
    description: Optional[str] = None
    maintenance_type: MaintenanceTypeField = 'routine'
    status: MaintenanceStatusField = 'scheduled'
    priority: MaintenancePriorityField = 'medium'
    cost: Optional[float] = Field(default=None, ge=0)
    scheduled_date: Optional[date] = None
    completed_date: Optional[date] = None
    odometer_reading: Optional[int] = Field(default=None, ge=0)
    technician_name: Optional[str] = None
    notes: Optional[str] = None

    parse_dates = field_validator('scheduled_date', 'completed_date', mode='before')(_date_field)


class MaintenanceUpdate(PartialSchema):
    not_null = ('title', 'status')

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    maintenance_type: Optional[MaintenanceTypeField] = None
    status: Optional[MaintenanceStatusField] = None
    priority: Optional[MaintenancePriorityField] = None
    cost: Optional[float] = Field(default=None, ge=0)
    scheduled_date: Optional[date] = None
    completed_date: Optional[date] = None
    odometer_reading: Optional[int] = Field(default=None, ge=0)
    technician_name: Optional[str] = None
    notes: Optional[str] = None

    parse_dates = field_validator('scheduled_date', 'completed_date', mode='before')(_date_field)


class TrafficFineCreate(Schema):
    license_plate: str = Field(min_length=1)
    violation_date: date
    fine_amount: float = Field(gt=0)
    violation_number: Optional[str] = None
    violation_charge: Optional[str] = None
    fine_location: Optional[str] = None
    payment_status: FinePaymentStatusField = 'pending'

    parse_dates = field_validator('violation_date', mode='before')(_date_field)
    normalise_plate = field_validator('license_plate')(_plate_field)


class TrafficFineUpdate(PartialSchema):
    not_null = ('fine_amount', 'violation_date')

    violation_number: Optional[str] = None
    violation_charge: Optional[str] = None
    fine_location: Optional[str] = None
    fine_amount: Optional[float] = Field(default=None, gt=0)
    violation_date: Optional[date] = None

    parse_dates = field_validator('violation_date', mode='before')(_date_field)


class LegalCaseCreate(Schema):
    customer_id: int
    lease_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    case_type: LegalCaseTypeField = 'other'
    status: LegalCaseStatusField = 'pending_reminder'
    priority: LegalPriorityField = 'medium'
    amount_owed: float = Field(default=0.0, ge=0)
    description: Optional[str] = None
    assigned_to: Optional[str] = None


class LegalCaseUpdate(PartialSchema):
    not_null = ('case_type', 'status')

    case_type: Optional[LegalCaseTypeField] = None
    status: Optional[LegalCaseStatusField] = None
    priority: Optional[LegalPriorityField] = None
    amount_owed: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    resolution_notes: Optional[str] = None


# ---------------------------------------------------------------------------
# Function endpoints

class AnalysisRequest(BaseModel):
    agreementId: int
    analysisType: AnalysisTypeField
    content: Optional[Dict[str, Any]] = None


class PreferredAttributes(BaseModel):
    model_config = ConfigDict(extra='allow')

    size: Optional[str] = None
    type: Optional[str] = None
    priceRange: Optional[str] = None
    features: List[str] = []


class RecommendationRequest(BaseModel):
    customerId: int
    rentalDuration: Optional[int] = Field(default=None, gt=0)
    preferredAttributes: Optional[PreferredAttributes] = None


class ArabicTextRequest(BaseModel):
    text: str = Field(min_length=1)
    context: str = 'PDF report with Arabic text'


class AgreementAnalysisData(BaseModel):
    model_config = ConfigDict(extra='allow')

    id: Any = None
    status: Optional[str] = None
    end_date: Optional[date] = None
    total_amount: Optional[float] = None
    deposit_amount: Optional[float] = None
    payments: List[Dict[str, Any]] = []

    parse_dates = field_validator('end_date', mode='before')(_date_field)
