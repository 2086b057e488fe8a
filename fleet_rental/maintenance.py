"""Maintenance jobs and the vehicle status they imply."""

import logging
from datetime import date, timedelta

from .errors import NotFound
from .models import Maintenance, MaintenanceStatus, Vehicle, VehicleStatus, db
from .schemas import MaintenanceCreate, MaintenanceUpdate, validate

logger = logging.getLogger(__name__)


def sync_vehicle_status(record: Maintenance):
    """In-progress work takes the vehicle off the road; finished work returns it."""
    vehicle = record.vehicle
    if vehicle is None:
        return
    if record.status == MaintenanceStatus.IN_PROGRESS:
        if vehicle.status != VehicleStatus.RENTED:
            vehicle.status = VehicleStatus.MAINTENANCE
    elif record.status in (MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED):
        still_open = (Maintenance.query
                      .filter(Maintenance.vehicle_id == vehicle.id,
                              Maintenance.id != record.id,
                              Maintenance.status == MaintenanceStatus.IN_PROGRESS)
                      .count())
        if vehicle.status == VehicleStatus.MAINTENANCE and not still_open:
            vehicle.status = VehicleStatus.AVAILABLE


def create_maintenance(data: dict) -> Maintenance:
    payload = validate(MaintenanceCreate, data)
    if db.session.get(Vehicle, payload.vehicle_id) is None:
        raise NotFound(f"Vehicle {payload.vehicle_id} not found")
    record = Maintenance(**payload.model_dump())
    if record.status == MaintenanceStatus.COMPLETED and record.completed_date is None:
        record.completed_date = date.today()
    db.session.add(record)
    db.session.flush()
    sync_vehicle_status(record)
    db.session.commit()
    logger.info("Scheduled maintenance %s (%s) for vehicle %s",
                record.id, record.title, record.vehicle_id)
    return record


def update_maintenance(record: Maintenance, data: dict) -> Maintenance:
    changes = validate(MaintenanceUpdate, data).model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(record, key, value)
    if record.status == MaintenanceStatus.COMPLETED and record.completed_date is None:
        record.completed_date = date.today()
    sync_vehicle_status(record)
    db.session.commit()
    logger.info("Maintenance %s updated (status %s)", record.id, record.status)
    return record


def delete_maintenance(record: Maintenance):
    # deleting open work is treated like cancelling it
    record.status = MaintenanceStatus.CANCELLED
    sync_vehicle_status(record)
    db.session.delete(record)
    db.session.commit()


def mark_overdue_maintenance(today: date = None) -> int:
    today = today or date.today()
    overdue = (Maintenance.query
               .filter(Maintenance.status == MaintenanceStatus.SCHEDULED,
                       Maintenance.scheduled_date < today)
               .all())
    for record in overdue:
        record.status = MaintenanceStatus.OVERDUE
    db.session.commit()
    if overdue:
        logger.info("Marked %d maintenance jobs overdue", len(overdue))
    return len(overdue)


def upcoming_maintenance(days: int = 30, today: date = None) -> list:
    today = today or date.today()
    return (Maintenance.query
            .filter(Maintenance.status == MaintenanceStatus.SCHEDULED,
                    Maintenance.scheduled_date >= today,
                    Maintenance.scheduled_date <= today + timedelta(days=days))
            .order_by(Maintenance.scheduled_date)
            .all())
