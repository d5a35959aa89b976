"""
Storage port for the scheduling service.

The engine itself never does I/O. The service is handed a ScheduleStore whose
open/close lifecycle belongs to the caller:

    with SqlScheduleStore(uri) as store:
        service = ScheduleService(store)
        ...

Reads return a StoreResult (the value, or `not_found` / `storage_error` /
`not_open`) instead of raising, so callers can tell "no data" apart from a
transient failure.
"""
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.logging_config import get_logger
from app.models import (
    Base,
    InspectionRecord,
    LotRecord,
    OrgSettingsRecord,
    SubcontractorRecord,
    TemplateRecord,
)
from app.scheduling.records import Inspection, Lot, OrgSettings, Subcontractor, Task, Template
from app.scheduling.results import StoreResult

logger = get_logger(__name__)


class ScheduleStoreError(Exception):
    """Raised for lifecycle misuse the caller owns (e.g. saving on a closed store)."""


def _as_record(value, record_class):
    return value if isinstance(value, record_class) else record_class.from_dict(value)


def _scheduled_tasks(lots: Iterable[Lot]) -> List[Task]:
    return [t for lot in lots for t in lot.tasks if t.has_dates]


class ScheduleStore:
    """Base port; adapters implement the load/list/save methods."""

    def __init__(self, default_settings: Optional[OrgSettings] = None):
        self._is_open = False
        # Returned by load_org_settings when nothing is stored
        self.default_settings = default_settings or OrgSettings()

    @property
    def is_open(self) -> bool:
        return self._is_open

    def open(self) -> 'ScheduleStore':
        self._is_open = True
        return self

    def close(self) -> None:
        self._is_open = False

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _require_open(self, operation: str) -> None:
        if not self._is_open:
            raise ScheduleStoreError(f"Cannot {operation}: store is not open")

    def load_lot(self, lot_id: str) -> StoreResult:
        raise NotImplementedError

    def save_lot(self, lot: Lot) -> StoreResult:
        raise NotImplementedError

    def load_template(self, template_id: str) -> StoreResult:
        raise NotImplementedError

    def load_org_settings(self) -> StoreResult:
        raise NotImplementedError

    def list_subcontractors(self) -> StoreResult:
        raise NotImplementedError

    def list_inspections(self, lot_id: str) -> StoreResult:
        raise NotImplementedError

    def list_scheduled_tasks(self, exclude_lot_id: Optional[str] = None) -> StoreResult:
        raise NotImplementedError


class InMemoryScheduleStore(ScheduleStore):
    """
    Dict-backed store for tests and local fixtures.

    Lots are kept serialized so a loaded lot never aliases the stored one.
    """

    def __init__(
        self,
        lots=(),
        templates=(),
        subcontractors=(),
        inspections=(),
        org_settings=None,
        default_settings: Optional[OrgSettings] = None,
    ):
        super().__init__(default_settings)
        self._lots: Dict[str, Dict] = {}
        for lot in lots:
            lot = _as_record(lot, Lot)
            self._lots[lot.id] = lot.to_dict()
        self._templates: Dict[str, Template] = {}
        for template in templates:
            template = _as_record(template, Template)
            self._templates[template.id] = template
        self._subcontractors = [_as_record(s, Subcontractor) for s in subcontractors]
        self._inspections = [_as_record(i, Inspection) for i in inspections]
        if org_settings is None or isinstance(org_settings, OrgSettings):
            self._org_settings = org_settings
        else:
            self._org_settings = OrgSettings.from_dict(org_settings)

    def load_lot(self, lot_id: str) -> StoreResult:
        if not self.is_open:
            return StoreResult.failure(StoreResult.NOT_OPEN)
        data = self._lots.get(lot_id)
        if data is None:
            return StoreResult.not_found()
        return StoreResult.success(Lot.from_dict(data))

    def save_lot(self, lot: Lot) -> StoreResult:
        self._require_open("save lot")
        self._lots[lot.id] = lot.to_dict()
        return StoreResult.success(lot)

    def load_template(self, template_id: str) -> StoreResult:
        if not self.is_open:
            return StoreResult.failure(StoreResult.NOT_OPEN)
        template = self._templates.get(template_id)
        if template is None:
            return StoreResult.not_found()
        return StoreResult.success(template)

    def load_org_settings(self) -> StoreResult:
        if not self.is_open:
            return StoreResult.failure(StoreResult.NOT_OPEN)
        return StoreResult.success(self._org_settings or self.default_settings)

    def list_subcontractors(self) -> StoreResult:
        if not self.is_open:
            return StoreResult.failure(StoreResult.NOT_OPEN)
        return StoreResult.success(list(self._subcontractors))

    def list_inspections(self, lot_id: str) -> StoreResult:
        if not self.is_open:
            return StoreResult.failure(StoreResult.NOT_OPEN)
        return StoreResult.success([i for i in self._inspections if i.lot_id == lot_id])

    def list_scheduled_tasks(self, exclude_lot_id: Optional[str] = None) -> StoreResult:
        if not self.is_open:
            return StoreResult.failure(StoreResult.NOT_OPEN)
        lots = [Lot.from_dict(data) for lot_id, data in self._lots.items() if lot_id != exclude_lot_id]
        return StoreResult.success(_scheduled_tasks(lots))


class SqlScheduleStore(ScheduleStore):
    """
    SQLAlchemy-backed store.

    Args:
        database_uri: SQLAlchemy URL; ignored when `engine` is given
        engine_options: Extra create_engine keyword arguments (see db_config)
        engine: An existing engine, left undisposed on close
        default_settings: Org settings used when no settings row exists
    """

    def __init__(
        self,
        database_uri: Optional[str] = None,
        engine_options: Optional[Dict] = None,
        engine=None,
        default_settings: Optional[OrgSettings] = None,
    ):
        super().__init__(default_settings)
        self._database_uri = database_uri
        self._engine_options = dict(engine_options or {})
        self._engine = engine
        self._owns_engine = engine is None
        self._session_factory = None

    def open(self) -> 'SqlScheduleStore':
        if self.is_open:
            return self
        if self._engine is None:
            self._engine = create_engine(self._database_uri, **self._engine_options)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        logger.info("Schedule store opened", dialect=self._engine.dialect.name)
        return super().open()

    def close(self) -> None:
        if not self.is_open:
            return
        if self._owns_engine and self._engine is not None:
            self._engine.dispose()
            self._engine = None
        self._session_factory = None
        super().close()
        logger.info("Schedule store closed")

    @contextmanager
    def _session(self):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    def _read(self, operation: str, reader, **context) -> StoreResult:
        if not self.is_open:
            return StoreResult.failure(StoreResult.NOT_OPEN)
        try:
            with self._session() as session:
                return reader(session)
        except SQLAlchemyError as e:
            logger.error("Schedule store read failed", operation=operation, error=str(e), exc_info=True, **context)
            return StoreResult.failure(StoreResult.STORAGE_ERROR, str(e))

    def load_lot(self, lot_id: str) -> StoreResult:
        def reader(session):
            row = session.get(LotRecord, lot_id)
            if row is None:
                return StoreResult.not_found()
            return StoreResult.success(Lot.from_dict(row.payload))
        return self._read("load_lot", reader, lot_id=lot_id)

    def save_lot(self, lot: Lot) -> StoreResult:
        self._require_open("save lot")
        try:
            with self._session() as session:
                row = session.get(LotRecord, lot.id)
                if row is None:
                    row = LotRecord(id=lot.id)
                    session.add(row)
                row.community_id = lot.community_id
                row.status = lot.status
                row.payload = lot.to_dict()
        except SQLAlchemyError as e:
            logger.error("Schedule store write failed", operation="save_lot", lot_id=lot.id, error=str(e), exc_info=True)
            return StoreResult.failure(StoreResult.STORAGE_ERROR, str(e))
        return StoreResult.success(lot)

    def load_template(self, template_id: str) -> StoreResult:
        def reader(session):
            row = session.get(TemplateRecord, template_id)
            if row is None:
                return StoreResult.not_found()
            return StoreResult.success(Template.from_dict(dict(row.payload, id=row.id)))
        return self._read("load_template", reader, template_id=template_id)

    def load_org_settings(self) -> StoreResult:
        def reader(session):
            row = session.query(OrgSettingsRecord).order_by(OrgSettingsRecord.id).first()
            if row is None:
                return StoreResult.success(self.default_settings)
            return StoreResult.success(OrgSettings.from_dict(row.payload))
        return self._read("load_org_settings", reader)

    def list_subcontractors(self) -> StoreResult:
        def reader(session):
            rows = session.query(SubcontractorRecord).order_by(SubcontractorRecord.id).all()
            return StoreResult.success([Subcontractor.from_dict(dict(r.payload, id=r.id)) for r in rows])
        return self._read("list_subcontractors", reader)

    def list_inspections(self, lot_id: str) -> StoreResult:
        def reader(session):
            rows = session.query(InspectionRecord).filter(InspectionRecord.lot_id == lot_id).all()
            return StoreResult.success([Inspection.from_dict(dict(r.payload, id=r.id)) for r in rows])
        return self._read("list_inspections", reader, lot_id=lot_id)

    def list_scheduled_tasks(self, exclude_lot_id: Optional[str] = None) -> StoreResult:
        def reader(session):
            query = session.query(LotRecord)
            if exclude_lot_id is not None:
                query = query.filter(LotRecord.id != exclude_lot_id)
            return StoreResult.success(_scheduled_tasks(Lot.from_dict(r.payload) for r in query.all()))
        return self._read("list_scheduled_tasks", reader, exclude_lot_id=exclude_lot_id)

    def seed(self, templates=(), subcontractors=(), inspections=(), org_settings=None) -> None:
        """Load reference data supplied by the outer application (raw dicts)."""
        self._require_open("seed")
        templates, subcontractors, inspections = list(templates), list(subcontractors), list(inspections)
        with self._session() as session:
            for data in templates:
                session.merge(TemplateRecord(id=str(data['id']), name=data.get('name'), payload=dict(data)))
            for data in subcontractors:
                session.merge(SubcontractorRecord(id=str(data['id']), trade=data.get('trade'), payload=dict(data)))
            for data in inspections:
                session.merge(InspectionRecord(id=str(data['id']), lot_id=data.get('lot_id'), payload=dict(data)))
            if org_settings is not None:
                session.merge(OrgSettingsRecord(id=1, payload=dict(org_settings)))
        logger.info(
            "Schedule store seeded",
            template_count=len(templates),
            subcontractor_count=len(subcontractors),
            inspection_count=len(inspections),
        )
