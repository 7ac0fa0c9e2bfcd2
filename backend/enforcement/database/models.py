"""
SQLAlchemy ORM Models

Tables for the violation review & challan issuance record store:
- violations: detections and their review status
- challans: penalty notices issued against verified violations
- challan_sequences: per-date counter behind challan numbers
"""

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Text, ForeignKey, Index, text
from sqlalchemy.sql import func

from .database import Base


class Violation(Base):
    """
    Detected traffic violation

    Created by detection ingestion; status only changes through review.
    """
    __tablename__ = "violations"

    id = Column(String, primary_key=True)
    track_id = Column(Integer)
    violation_type = Column(String, nullable=False, index=True)
    vehicle_type = Column(String, nullable=False)
    plate_number = Column(String, index=True)

    timestamp = Column(DateTime, nullable=False, index=True)  # UTC, naive
    frame_number = Column(Integer, nullable=False)
    confidence = Column(Float, nullable=False)
    camera = Column(String, nullable=False, index=True)

    status = Column(String, nullable=False, default="pending", index=True)
    details_json = Column(Text, nullable=False, default="{}")

    job_id = Column(String, index=True)
    challan_id = Column(String)  # active challan, for traceability

    created_at = Column(DateTime, server_default=func.now())
    reviewed_at = Column(DateTime)

    __table_args__ = (
        Index("idx_violation_status_time", "status", "timestamp"),
    )


class Challan(Base):
    """
    Penalty notice issued for a verified violation

    At most one non-cancelled challan may reference a violation.
    """
    __tablename__ = "challans"

    id = Column(String, primary_key=True)
    challan_number = Column(String, nullable=False, unique=True)
    violation_id = Column(String, ForeignKey("violations.id"), nullable=False, index=True)

    vehicle_number = Column(String, nullable=False)
    owner_name = Column(String, nullable=False)
    owner_address = Column(Text)
    violation_type = Column(String, nullable=False)
    violation_description = Column(Text)

    penalty_amount = Column(Integer, nullable=False)
    issue_date = Column(Date, nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # Position within issue_date
    due_date = Column(Date, nullable=False)

    status = Column(String, nullable=False, default="issued", index=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        Index(
            "uq_challan_active_violation",
            "violation_id",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )


class ChallanSequence(Base):
    """Last challan sequence number used on each issue date"""
    __tablename__ = "challan_sequences"

    issue_date = Column(Date, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
