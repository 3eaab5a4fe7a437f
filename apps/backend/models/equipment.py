"""
Equipment & Maintenance Models
==============================
Equipment inventory, maintenance schedules, interventions and their
attachments.
"""

import enum

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)

from .base import Base, utcnow


class EquipmentStatus(str, enum.Enum):
    OPERATIONAL = "operational"
    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "out_of_service"


class ScheduleType(str, enum.Enum):
    PREVENTIVE = "preventive"
    CORRECTIVE = "corrective"


class Frequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class InterventionType(str, enum.Enum):
    PREVENTIVE = "preventive"
    CORRECTIVE = "corrective"
    EMERGENCY = "emergency"


class InterventionStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class EquipmentType(Base):
    __tablename__ = "equipment_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<EquipmentType(id={self.id}, name='{self.name}')>"


class Equipment(Base):
    """Tracked piece of equipment. `code` is the unique inventory tag."""
    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    code = Column(String(100), nullable=False, unique=True)
    type_id = Column(Integer, ForeignKey("equipment_types.id"), nullable=True)
    status = Column(String(32), nullable=False, default=EquipmentStatus.OPERATIONAL.value)
    location = Column(String(255), nullable=True)
    installation_date = Column(DateTime, nullable=True)
    specifications = Column(JSON, nullable=True)
    photo = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_equipment_type_id", "type_id"),
        Index("ix_equipment_status", "status"),
    )

    def __repr__(self):
        return f"<Equipment(id={self.id}, code='{self.code}', status='{self.status}')>"


class MaintenanceSchedule(Base):
    __tablename__ = "maintenance_schedules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(32), nullable=False)
    frequency = Column(String(32), nullable=True)
    next_date = Column(DateTime, nullable=False)
    description = Column(Text, nullable=True)
    reminder_days = Column(Integer, nullable=False, default=7)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_maintenance_schedules_next_date", "next_date"),
        Index("ix_maintenance_schedules_equipment_id", "equipment_id"),
    )

    def __repr__(self):
        return f"<MaintenanceSchedule(id={self.id}, equipment_id={self.equipment_id}, next={self.next_date})>"


class MaintenanceIntervention(Base):
    """A maintenance job carried out (or in progress) on a piece of equipment."""
    __tablename__ = "maintenance_interventions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id", ondelete="CASCADE"), nullable=False)
    schedule_id = Column(Integer, ForeignKey("maintenance_schedules.id", ondelete="SET NULL"), nullable=True)
    type = Column(String(32), nullable=False)
    status = Column(String(32), nullable=False, default=InterventionStatus.PENDING.value)
    start_date = Column(DateTime, nullable=False, default=utcnow)
    end_date = Column(DateTime, nullable=True)
    technician = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    findings = Column(Text, nullable=True)
    actions = Column(Text, nullable=True)
    parts = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_maintenance_interventions_start_date", "start_date"),
        Index("ix_maintenance_interventions_equipment_id", "equipment_id"),
    )

    def __repr__(self):
        return f"<MaintenanceIntervention(id={self.id}, status='{self.status}')>"


class MaintenanceAttachment(Base):
    __tablename__ = "maintenance_attachments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    intervention_id = Column(
        Integer, ForeignKey("maintenance_interventions.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(500), nullable=False)
    path = Column(Text, nullable=False)
    type = Column(String(100), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    uploaded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<MaintenanceAttachment(id={self.id}, intervention_id={self.intervention_id})>"
