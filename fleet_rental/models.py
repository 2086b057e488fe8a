"""Database models for the fleet.

Every table the dashboard works with lives here: vehicles, customers
(``profiles``), rental agreements (``leases``), the unified payment ledger,
maintenance, traffic fines, legal cases, CSV imports, agreement templates,
stored AI analyses, pricing models and per-vehicle expenses.

Consistency rules such as "a vehicle is held by at most one active
agreement" are enforced by the services, not by the schema.
"""

from datetime import date, datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class LeaseStatus:
    DRAFT = 'draft'
    PENDING = 'pending'
    ACTIVE = 'active'
    CLOSED = 'closed'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    TERMINATED = 'terminated'
    EXPIRED = 'expired'
    ARCHIVED = 'archived'

    ALL = (DRAFT, PENDING, ACTIVE, CLOSED, COMPLETED, CANCELLED, TERMINATED, EXPIRED, ARCHIVED)
    FINISHED = (CLOSED, COMPLETED, CANCELLED, TERMINATED, EXPIRED, ARCHIVED)


class VehicleStatus:
    AVAILABLE = 'available'
    RENTED = 'rented'
    MAINTENANCE = 'maintenance'
    RESERVED = 'reserved'
    SOLD = 'sold'
    DAMAGED = 'damaged'
    INACTIVE = 'inactive'

    ALL = (AVAILABLE, RENTED, MAINTENANCE, RESERVED, SOLD, DAMAGED, INACTIVE)


class PaymentStatus:
    PENDING = 'pending'
    PAID = 'paid'
    PARTIALLY_PAID = 'partially_paid'
    OVERDUE = 'overdue'
    CANCELLED = 'cancelled'
    REFUNDED = 'refunded'

    ALL = (PENDING, PAID, PARTIALLY_PAID, OVERDUE, CANCELLED, REFUNDED)
    OPEN = (PENDING, PARTIALLY_PAID, OVERDUE)


class PaymentType:
    RENT = 'rent'
    DEPOSIT = 'deposit'
    LATE_FEE = 'late_fee'
    FINE = 'fine'
    OTHER = 'other'

    ALL = (RENT, DEPOSIT, LATE_FEE, FINE, OTHER)


class FinePaymentStatus:
    PENDING = 'pending'
    PAID = 'paid'
    DISPUTED = 'disputed'
    REFUNDED = 'refunded'

    ALL = (PENDING, PAID, DISPUTED, REFUNDED)


class MaintenanceStatus:
    SCHEDULED = 'scheduled'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    OVERDUE = 'overdue'

    ALL = (SCHEDULED, IN_PROGRESS, COMPLETED, CANCELLED, OVERDUE)


class LegalCaseStatus:
    PENDING_REMINDER = 'pending_reminder'
    IN_LEGAL_PROCESS = 'in_legal_process'
    ESCALATED = 'escalated'
    RESOLVED = 'resolved'
    CLOSED = 'closed'

    ALL = (PENDING_REMINDER, IN_LEGAL_PROCESS, ESCALATED, RESOLVED, CLOSED)
    OPEN = (PENDING_REMINDER, IN_LEGAL_PROCESS, ESCALATED)


class ImportStatus:
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'


class SerializerMixin:
    """Plain ``dict`` view of a row, dates rendered as ISO strings."""

    def to_dict(self) -> dict:
        out = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            out[column.name] = value
        return out


class Vehicle(SerializerMixin, db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.Integer, primary_key=True)
    make = db.Column(db.String(80), nullable=False)
    model = db.Column(db.String(120), nullable=False)
    year = db.Column(db.Integer)
    license_plate = db.Column(db.String(20), unique=True, nullable=False)
    vin = db.Column(db.String(40))
    color = db.Column(db.String(50))
    status = db.Column(db.String(20), default=VehicleStatus.AVAILABLE, nullable=False)
    mileage = db.Column(db.Integer)
    rent_amount = db.Column(db.Float)  # monthly base rent
    purchase_price = db.Column(db.Float)
    initial_investment = db.Column(db.Float)
    registration_expiry = db.Column(db.Date)
    insurance_expiry = db.Column(db.Date)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    agreements = db.relationship('Agreement', back_populates='vehicle')
    maintenance_records = db.relationship('Maintenance', back_populates='vehicle',
                                          cascade='all, delete-orphan')
    traffic_fines = db.relationship('TrafficFine', back_populates='vehicle')
    expenses = db.relationship('VehicleExpense', back_populates='vehicle',
                               cascade='all, delete-orphan')

    def __repr__(self) -> str:
        return f"<Vehicle {self.license_plate}>"


class Customer(SerializerMixin, db.Model):
    __tablename__ = 'profiles'

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120))
    phone_number = db.Column(db.String(50))
    driver_license = db.Column(db.String(50))
    nationality = db.Column(db.String(60))
    address = db.Column(db.Text)
    role = db.Column(db.String(20), default='customer')
    status = db.Column(db.String(20), default='active')
    created_at = db.Column(db.DateTime, default=utcnow)

    agreements = db.relationship('Agreement', back_populates='customer')
    traffic_fines = db.relationship('TrafficFine', back_populates='customer')
    legal_cases = db.relationship('LegalCase', back_populates='customer')

    def __repr__(self) -> str:
        return f"<Customer {self.full_name}>"


class PricingModel(SerializerMixin, db.Model):
    __tablename__ = 'pricing_models'

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(40), unique=True, nullable=False)
    name = db.Column(db.String(80), nullable=False)
    base_multiplier = db.Column(db.Float, default=1.0, nullable=False)
    seasonal_adjustment = db.Column(db.Float, default=0.3, nullable=False)
    demand_adjustment = db.Column(db.Float, default=0.5, nullable=False)
    description = db.Column(db.Text)

    def __repr__(self) -> str:
        return f"<PricingModel {self.slug}>"


class Agreement(SerializerMixin, db.Model):
    __tablename__ = 'leases'

    id = db.Column(db.Integer, primary_key=True)
    agreement_number = db.Column(db.String(40), unique=True, nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'))
    status = db.Column(db.String(20), default=LeaseStatus.DRAFT, nullable=False)
    agreement_type = db.Column(db.String(40), default='short_term')
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    rent_amount = db.Column(db.Float)
    deposit_amount = db.Column(db.Float, default=0.0)
    total_amount = db.Column(db.Float)
    daily_late_fee = db.Column(db.Float)
    rent_due_day = db.Column(db.Integer, default=1)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    customer = db.relationship('Customer', back_populates='agreements')
    vehicle = db.relationship('Vehicle', back_populates='agreements')
    payments = db.relationship('UnifiedPayment', back_populates='agreement',
                               cascade='all, delete-orphan',
                               order_by='UnifiedPayment.due_date')
    traffic_fines = db.relationship('TrafficFine', back_populates='agreement')
    legal_cases = db.relationship('LegalCase', back_populates='agreement')
    analyses = db.relationship('AIAnalysis', back_populates='agreement',
                               cascade='all, delete-orphan')

    def __repr__(self) -> str:
        return f"<Agreement {self.agreement_number} {self.status}>"


class UnifiedPayment(SerializerMixin, db.Model):
    __tablename__ = 'unified_payments'

    id = db.Column(db.Integer, primary_key=True)
    lease_id = db.Column(db.Integer, db.ForeignKey('leases.id'), nullable=False)
    related_payment_id = db.Column(db.Integer, db.ForeignKey('unified_payments.id'))
    type = db.Column(db.String(20), default=PaymentType.RENT, nullable=False)
    status = db.Column(db.String(20), default=PaymentStatus.PENDING, nullable=False)
    description = db.Column(db.String(255))
    amount = db.Column(db.Float, nullable=False)
    amount_paid = db.Column(db.Float, default=0.0, nullable=False)
    balance = db.Column(db.Float)
    payment_method = db.Column(db.String(40))
    payment_date = db.Column(db.Date)
    due_date = db.Column(db.Date)
    days_overdue = db.Column(db.Integer, default=0)
    late_fine_amount = db.Column(db.Float, default=0.0)
    created_at = db.Column(db.DateTime, default=utcnow)

    agreement = db.relationship('Agreement', back_populates='payments')
    late_fees = db.relationship('UnifiedPayment',
                                backref=db.backref('related_payment', remote_side=[id]))

    def __repr__(self) -> str:
        return f"<UnifiedPayment {self.type} {self.amount} {self.status}>"


class Maintenance(SerializerMixin, db.Model):
    __tablename__ = 'maintenance'

    id = db.Column(db.Integer, primary_key=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'), nullable=False)
    title = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)
    maintenance_type = db.Column(db.String(20), default='routine')
    status = db.Column(db.String(20), default=MaintenanceStatus.SCHEDULED, nullable=False)
    priority = db.Column(db.String(20), default='medium')
    cost = db.Column(db.Float)
    scheduled_date = db.Column(db.Date)
    completed_date = db.Column(db.Date)
    odometer_reading = db.Column(db.Integer)
    technician_name = db.Column(db.String(120))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)

    vehicle = db.relationship('Vehicle', back_populates='maintenance_records')

    def __repr__(self) -> str:
        return f"<Maintenance {self.title} {self.status}>"


class TrafficFine(SerializerMixin, db.Model):
    __tablename__ = 'traffic_fines'

    id = db.Column(db.Integer, primary_key=True)
    violation_number = db.Column(db.String(60))
    license_plate = db.Column(db.String(20), nullable=False)
    violation_date = db.Column(db.Date, nullable=False)
    fine_amount = db.Column(db.Float, nullable=False)
    violation_charge = db.Column(db.String(255))
    fine_location = db.Column(db.String(255))
    payment_status = db.Column(db.String(20), default=FinePaymentStatus.PENDING, nullable=False)
    assignment_status = db.Column(db.String(20), default='pending', nullable=False)
    payment_date = db.Column(db.Date)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'))
    lease_id = db.Column(db.Integer, db.ForeignKey('leases.id'))
    customer_id = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    created_at = db.Column(db.DateTime, default=utcnow)

    vehicle = db.relationship('Vehicle', back_populates='traffic_fines')
    agreement = db.relationship('Agreement', back_populates='traffic_fines')
    customer = db.relationship('Customer', back_populates='traffic_fines')

    def __repr__(self) -> str:
        return f"<TrafficFine {self.license_plate} {self.fine_amount}>"


class LegalCase(SerializerMixin, db.Model):
    __tablename__ = 'legal_cases'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('profiles.id'))
    lease_id = db.Column(db.Integer, db.ForeignKey('leases.id'))
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'))
    case_type = db.Column(db.String(30), default='other', nullable=False)
    status = db.Column(db.String(30), default=LegalCaseStatus.PENDING_REMINDER, nullable=False)
    priority = db.Column(db.String(20), default='medium')
    amount_owed = db.Column(db.Float, default=0.0)
    description = db.Column(db.Text)
    assigned_to = db.Column(db.String(120))
    resolution_notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    resolved_at = db.Column(db.DateTime)

    customer = db.relationship('Customer', back_populates='legal_cases')
    agreement = db.relationship('Agreement', back_populates='legal_cases')

    def __repr__(self) -> str:
        return f"<LegalCase {self.case_type} {self.status}>"


class AgreementImport(SerializerMixin, db.Model):
    __tablename__ = 'agreement_imports'

    id = db.Column(db.Integer, primary_key=True)
    file_name = db.Column(db.String(255), nullable=False)
    import_type = db.Column(db.String(20), default='agreements', nullable=False)
    status = db.Column(db.String(20), default=ImportStatus.PENDING, nullable=False)
    row_count = db.Column(db.Integer, default=0)
    processed_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    errors = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<AgreementImport {self.file_name} {self.status}>"


class AgreementTemplate(SerializerMixin, db.Model):
    __tablename__ = 'agreement_templates'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    agreement_type = db.Column(db.String(40), default='short_term')
    content = db.Column(db.Text, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<AgreementTemplate {self.name}>"


class AIAnalysis(SerializerMixin, db.Model):
    __tablename__ = 'ai_analysis'

    id = db.Column(db.Integer, primary_key=True)
    agreement_id = db.Column(db.Integer, db.ForeignKey('leases.id'), nullable=False)
    analysis_type = db.Column(db.String(40), nullable=False)
    content = db.Column(db.JSON)
    status = db.Column(db.String(20), default='completed')
    confidence_score = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=utcnow)

    agreement = db.relationship('Agreement', back_populates='analyses')

    def __repr__(self) -> str:
        return f"<AIAnalysis {self.analysis_type} agreement={self.agreement_id}>"


class AIRecommendation(SerializerMixin, db.Model):
    __tablename__ = 'ai_recommendations'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('profiles.id'), nullable=False)
    recommendation_type = db.Column(db.String(40), default='vehicle', nullable=False)
    content = db.Column(db.JSON)
    preferred_attributes = db.Column(db.JSON)
    status = db.Column(db.String(20), default='completed')
    created_at = db.Column(db.DateTime, default=utcnow)

    customer = db.relationship('Customer')

    def __repr__(self) -> str:
        return f"<AIRecommendation {self.recommendation_type} customer={self.customer_id}>"


class VehicleExpense(SerializerMixin, db.Model):
    __tablename__ = 'vehicle_expenses'

    id = db.Column(db.Integer, primary_key=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'), nullable=False)
    date = db.Column(db.Date, default=date.today)
    category = db.Column(db.String(100))
    description = db.Column(db.Text)
    cost = db.Column(db.Float, nullable=False)
    recurring = db.Column(db.Boolean, default=False)
    next_due_date = db.Column(db.Date, nullable=True)

    vehicle = db.relationship('Vehicle', back_populates='expenses')

    def __repr__(self) -> str:
        return f"<VehicleExpense {self.category} {self.cost}>"
