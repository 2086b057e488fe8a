import io
import os

import pytest
from werkzeug.datastructures import FileStorage

from fleet_rental.errors import NotFound, ValidationFailed
from fleet_rental.imports import map_row, process_import, run_import, save_import_file
from fleet_rental.models import (Agreement, AgreementImport, Customer, ImportStatus, LeaseStatus,
                                 db)

HEADER = "Customer ID,Vehicle ID,Start Date,End Date,Rent Amount,Deposit Amount,Agreement Type,Notes\n"


@pytest.fixture
def import_record(app):
    def _make(import_type='agreements'):
        record = AgreementImport(file_name='upload.csv', import_type=import_type)
        db.session.add(record)
        db.session.commit()
        return record
    return _make


def test_map_row_drops_blanks_and_unknown_headers():
    row = {' Customer ID ': '3', 'Vehicle ID': '', 'Colour': 'red', None: ['extra']}
    assert map_row(row, {'Customer ID': 'customer_id', 'Vehicle ID': 'vehicle_id'}) == {
        'customer_id': '3'}


class TestAgreementImport:
    def test_good_rows_imported_bad_rows_reported(self, import_record, make_customer,
                                                 make_vehicle):
        customer, vehicle = make_customer(), make_vehicle()
        csv_text = HEADER + (
            f"{customer.id},{vehicle.id},2024-01-01,2024-06-30,3000,,monthly,First\n"
            f"{customer.id},{vehicle.id},not-a-date,2024-06-30,3000,,,\n"
            f"999,{vehicle.id},01/02/2024,01/08/2024,2500,500,,\n"
        )
        record = import_record()
        result = process_import(record, csv_text)

        assert result['success'] is True
        assert result['processed'] == 1
        assert result['errors'] == 2
        assert [d['row'] for d in result['details']] == [3, 4]
        assert 'start_date' in result['details'][0]['errors']
        assert result['details'][1]['errors'] == "Customer 999 not found"

        assert record.status == ImportStatus.COMPLETED
        assert record.row_count == 3
        assert record.processed_count == 1
        assert record.error_count == 2
        assert len(record.errors['details']) == 2

        agreement = Agreement.query.one()
        assert agreement.status == LeaseStatus.DRAFT
        assert agreement.deposit_amount == 0.0
        assert agreement.total_amount == 3000.0
        assert agreement.agreement_type == 'monthly'
        assert agreement.agreement_number.startswith('AGR-')

    def test_sequential_numbers(self, import_record, make_customer, make_vehicle):
        customer, vehicle = make_customer(), make_vehicle()
        row = f"{customer.id},{vehicle.id},2024-01-01,2024-06-30,3000,,,\n"
        process_import(import_record(), HEADER + row + row)
        numbers = sorted(a.agreement_number for a in Agreement.query.all())
        assert numbers[0].endswith('-0001')
        assert numbers[1].endswith('-0002')

    def test_header_only_fails(self, import_record):
        record = import_record()
        result = process_import(record, HEADER)
        assert result['success'] is False
        assert record.status == ImportStatus.FAILED
        assert record.errors['details'][0]['row'] == 0

    def test_all_rows_rejected_fails(self, import_record):
        record = import_record()
        result = process_import(record, HEADER + "1,1,bad,bad,x,,,\n")
        assert result['processed'] == 0
        assert record.status == ImportStatus.FAILED


def test_customer_import(import_record, make_customer):
    make_customer(full_name='Existing', email='taken@example.com')
    csv_text = (
        "Full Name,Email,Phone,Nationality\n"
        "Layla Hassan,Layla@Example.com,+974 5555 1234,Qatari\n"
        "Dup Person,taken@example.com,,\n"
        ",nobody@example.com,,\n"
    )
    record = import_record('customers')
    result = process_import(record, csv_text)
    assert result['processed'] == 1
    assert result['errors'] == 2
    layla = Customer.query.filter_by(full_name='Layla Hassan').one()
    assert layla.email == 'layla@example.com'
    assert layla.nationality == 'Qatari'


class TestFiles:
    def test_save_and_run(self, app, make_customer, make_vehicle):
        customer, vehicle = make_customer(), make_vehicle()
        folder = app.config['UPLOAD_FOLDER']
        content = HEADER + f"{customer.id},{vehicle.id},2024-01-01,2024-06-30,3000,,,\n"
        upload = FileStorage(stream=io.BytesIO(content.encode('utf-8')), filename='my leases.csv')

        record = save_import_file(upload, folder)
        assert record.status == ImportStatus.PENDING
        assert record.file_name.startswith('agreements_')
        assert record.file_name.endswith('_my_leases.csv')
        assert os.path.exists(os.path.join(folder, record.file_name))

        result = run_import(record, folder)
        assert result['processed'] == 1
        assert record.status == ImportStatus.COMPLETED

    def test_rejects_non_csv(self, app):
        upload = FileStorage(stream=io.BytesIO(b'x'), filename='leases.xlsx')
        with pytest.raises(ValidationFailed):
            save_import_file(upload, app.config['UPLOAD_FOLDER'])

    def test_rejects_unknown_type(self, app):
        upload = FileStorage(stream=io.BytesIO(b'x'), filename='leases.csv')
        with pytest.raises(ValidationFailed):
            save_import_file(upload, app.config['UPLOAD_FOLDER'], 'vehicles')

    def test_missing_file_marks_failed(self, app, import_record):
        record = import_record()
        with pytest.raises(NotFound):
            run_import(record, app.config['UPLOAD_FOLDER'])
        assert record.status == ImportStatus.FAILED
