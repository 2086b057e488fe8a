"""
CSV imports of agreements and customers.

An upload is saved under ``UPLOAD_FOLDER`` and recorded in
``agreement_imports`` with status ``pending``. Processing moves it to
``processing`` and then ``completed``, or ``failed`` when the file has no
data rows or none of them could be imported. Rows are validated one at a
time; a bad row is counted and described in ``errors`` and the rest still
go through. Imported agreements are created as drafts.
"""

import csv
import io
import logging
import os

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .agreements import next_agreement_number
from .errors import NotFound, ValidationFailed, describe_validation_error
from .models import (Agreement, AgreementImport, Customer, ImportStatus, LeaseStatus, Vehicle,
                     db, utcnow)
from .schemas import AgreementImportRow, CustomerImportRow

logger = logging.getLogger(__name__)

AGREEMENT_FIELDS = {
    'Customer ID': 'customer_id',
    'Vehicle ID': 'vehicle_id',
    'Start Date': 'start_date',
    'End Date': 'end_date',
    'Rent Amount': 'rent_amount',
    'Deposit Amount': 'deposit_amount',
    'Agreement Type': 'agreement_type',
    'Notes': 'notes',
}

CUSTOMER_FIELDS = {
    'Full Name': 'full_name',
    'Email': 'email',
    'Phone': 'phone_number',
    'Driver License': 'driver_license',
    'Nationality': 'nationality',
    'Address': 'address',
}

IMPORT_TYPES = ('agreements', 'customers')


# ---------------------------------------------------------------------------
# Files

def save_import_file(file_obj, upload_folder: str, import_type: str = 'agreements') -> AgreementImport:
    """Store an uploaded CSV and create its pending import record."""
    if import_type not in IMPORT_TYPES:
        raise ValidationFailed(f"Unknown import type: {import_type}")
    if file_obj is None or not file_obj.filename:
        raise ValidationFailed("No file uploaded")
    if not file_obj.filename.lower().endswith('.csv'):
        raise ValidationFailed("Only CSV files can be imported")
    os.makedirs(upload_folder, exist_ok=True)
    base_name = os.path.basename(file_obj.filename).replace(' ', '_')
    file_name = f"{import_type}_{utcnow().timestamp():.0f}_{base_name}"
    file_obj.save(os.path.join(upload_folder, file_name))

    record = AgreementImport(file_name=file_name, import_type=import_type,
                             status=ImportStatus.PENDING)
    db.session.add(record)
    db.session.commit()
    logger.info("Saved %s import %s as %s", import_type, record.id, file_name)
    return record


def read_import_file(record: AgreementImport, upload_folder: str) -> str:
    path = os.path.join(upload_folder, record.file_name)
    if not os.path.exists(path):
        raise NotFound(f"Import file {record.file_name} not found")
    with open(path, encoding='utf-8-sig') as fh:
        return fh.read()


# ---------------------------------------------------------------------------
# Row handling

def map_row(row: dict, field_map: dict) -> dict:
    """Rename CSV headers to column names and drop blank cells."""
    mapped = {}
    for header, value in row.items():
        if header is None:
            continue
        field = field_map.get(header.strip())
        if field is None or value is None:
            continue
        value = value.strip()
        if value:
            mapped[field] = value
    return mapped


def _agreement_from_row(data: dict) -> Agreement:
    row = AgreementImportRow.model_validate(data)
    if row.end_date <= row.start_date:
        raise ValueError("End date must be after start date")
    if db.session.get(Customer, row.customer_id) is None:
        raise ValueError(f"Customer {row.customer_id} not found")
    if db.session.get(Vehicle, row.vehicle_id) is None:
        raise ValueError(f"Vehicle {row.vehicle_id} not found")
    return Agreement(
        agreement_number=next_agreement_number(),
        customer_id=row.customer_id,
        vehicle_id=row.vehicle_id,
        start_date=row.start_date,
        end_date=row.end_date,
        rent_amount=row.rent_amount,
        deposit_amount=row.deposit_amount,
        total_amount=row.rent_amount,
        agreement_type=row.agreement_type,
        notes=row.notes,
        status=LeaseStatus.DRAFT,
    )


def _customer_from_row(data: dict) -> Customer:
    row = CustomerImportRow.model_validate(data)
    if row.email and Customer.query.filter_by(email=row.email).first():
        raise ValueError(f"Customer with email {row.email} already exists")
    return Customer(**row.model_dump())


def _finish(record: AgreementImport, status: str, processed: int, details: list):
    record.status = status
    record.processed_count = processed
    record.error_count = len(details)
    record.errors = {'details': details} if details else None
    record.updated_at = utcnow()
    db.session.commit()


def process_import(record: AgreementImport, csv_text: str) -> dict:
    """Import every row of ``csv_text`` into the table ``record`` targets."""
    if record.import_type == 'customers':
        field_map, build = CUSTOMER_FIELDS, _customer_from_row
    else:
        field_map, build = AGREEMENT_FIELDS, _agreement_from_row

    record.status = ImportStatus.PROCESSING
    db.session.commit()

    reader = csv.DictReader(io.StringIO(csv_text))
    rows = [row for row in reader if any((v or '').strip() for v in row.values() if isinstance(v, str))]
    record.row_count = len(rows)
    db.session.commit()

    if not rows:
        details = [{'row': 0, 'errors': "CSV file is empty or contains only headers"}]
        _finish(record, ImportStatus.FAILED, 0, details)
        logger.warning("Import %s failed: no data rows", record.id)
        return {'success': False, 'processed': 0, 'errors': 1, 'details': details}

    processed = 0
    details = []
    # header is line 1, so data rows start at 2
    for line_number, row in enumerate(rows, start=2):
        data = map_row(row, field_map)
        try:
            db.session.add(build(data))
            db.session.commit()
        except ValidationError as exc:
            db.session.rollback()
            details.append({'row': line_number, 'errors': describe_validation_error(exc), 'data': data})
            logger.info("Import %s row %d rejected: %s", record.id, line_number, details[-1]['errors'])
            continue
        except ValueError as exc:
            db.session.rollback()
            details.append({'row': line_number, 'errors': str(exc), 'data': data})
            logger.info("Import %s row %d rejected: %s", record.id, line_number, exc)
            continue
        except SQLAlchemyError as exc:
            db.session.rollback()
            details.append({'row': line_number, 'errors': str(exc.__cause__ or exc), 'data': data})
            logger.exception("Import %s row %d could not be saved", record.id, line_number)
            continue
        processed += 1

    status = ImportStatus.COMPLETED if processed else ImportStatus.FAILED
    _finish(record, status, processed, details)
    logger.info("Import %s %s: %d imported, %d rejected",
                record.id, status, processed, len(details))
    return {'success': processed > 0, 'processed': processed, 'errors': len(details),
            'details': details}


def run_import(record: AgreementImport, upload_folder: str) -> dict:
    try:
        csv_text = read_import_file(record, upload_folder)
    except (NotFound, OSError, UnicodeDecodeError) as exc:
        message = getattr(exc, 'message', None) or str(exc)
        _finish(record, ImportStatus.FAILED, 0, [{'row': 0, 'errors': message}])
        logger.error("Import %s failed: %s", record.id, message)
        raise
    return process_import(record, csv_text)
