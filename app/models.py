"""
SQLAlchemy tables backing the SQL schedule store.

Lots, templates, subcontractors and inspections are kept as JSON payloads in
the shape of their record's to_dict/from_dict, with a few columns pulled out
for lookups.
"""
from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

from app.datetime_utils import utc_now

Base = declarative_base()


class LotRecord(Base):
    """A lot snapshot, tasks and change log included."""
    __tablename__ = "lots"

    id = Column(String(64), primary_key=True)
    community_id = Column(String(64), nullable=True, index=True)
    status = Column(String(32), nullable=False, default="not_started")
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f"<LotRecord {self.id} status={self.status}>"


class TemplateRecord(Base):
    __tablename__ = "task_templates"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=True)
    payload = Column(JSON, nullable=False)


class SubcontractorRecord(Base):
    __tablename__ = "subcontractors"

    id = Column(String(64), primary_key=True)
    trade = Column(String(64), nullable=True, index=True)
    payload = Column(JSON, nullable=False)


class InspectionRecord(Base):
    __tablename__ = "inspections"

    id = Column(String(64), primary_key=True)
    lot_id = Column(String(64), nullable=True, index=True)
    payload = Column(JSON, nullable=False)


class OrgSettingsRecord(Base):
    """Work week and holidays; a single row per deployment."""
    __tablename__ = "org_settings"

    id = Column(Integer, primary_key=True)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
