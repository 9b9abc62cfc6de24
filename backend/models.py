"""
Signing Database Models
=======================
SQLAlchemy models and the document store built on them.

Agreements and pricing summaries are persisted whole, as JSON payloads.
Agreement writes are compare-and-swap on the ``version`` column, so two
requests racing on the same record cannot both succeed.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional
import uuid

from sqlalchemy import create_engine, Column, String, DateTime, Text, Integer, select, update, text
from sqlalchemy.orm import sessionmaker, declarative_base, Session

from core.errors import Conflict, NotFound
from core.logger import logger
from services.signing.records import Agreement, Summary, validate_transition

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgreementRow(Base):
    """
    One agreement, stored as a single JSON document.
    """
    __tablename__ = "agreements"

    id = Column(String(50), primary_key=True, index=True)
    email = Column(String(200), nullable=True, index=True)
    version = Column(Integer, nullable=False, default=1)
    payload_json = Column(Text, nullable=False, default="{}")

    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def to_record(self) -> Agreement:
        agreement = Agreement.model_validate_json(self.payload_json)
        agreement.version = self.version
        return agreement


class SummaryRow(Base):
    """
    Pricing summary submitted ahead of the agreement.
    """
    __tablename__ = "summaries"

    id = Column(String(50), primary_key=True, index=True)
    email = Column(String(200), nullable=True, index=True)
    payload_json = Column(Text, nullable=False, default="{}")
    created_at = Column(DateTime, default=_utcnow, index=True)

    def to_record(self) -> Summary:
        return Summary.model_validate_json(self.payload_json)


class ClientLoginRow(Base):
    """
    A client that started the intake flow.
    """
    __tablename__ = "clients"

    id = Column(String(50), primary_key=True, index=True)
    business_name = Column(String(200), default="")
    email = Column(String(200), default="")
    phone = Column(String(50), default="")
    created_at = Column(DateTime, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_name": self.business_name,
            "email": self.email,
            "phone": self.phone,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Database:
    """Engine + session factory for one database URL."""

    def __init__(self, url: str):
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.url = url
        self.engine = create_engine(url, connect_args=connect_args)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def init_db(self):
        """Initialize the database tables."""
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def ping(self) -> bool:
        try:
            with self.session() as db:
                db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False


class AgreementStore:
    """Load / create / save agreements as whole documents."""

    def __init__(self, database: Database):
        self.database = database

    def load(self, agreement_id: str) -> Optional[Agreement]:
        with self.database.session() as db:
            row = db.get(AgreementRow, agreement_id)
            return row.to_record() if row else None

    def create(self, agreement: Agreement) -> Agreement:
        validate_transition(None, agreement)
        with self.database.session() as db:
            row = AgreementRow(
                id=agreement.id,
                email=agreement.email,
                version=1,
                payload_json=agreement.model_dump_json(exclude={"version"}),
            )
            db.add(row)
            db.commit()
        agreement.version = 1
        return agreement

    def save(self, agreement: Agreement) -> Agreement:
        """
        Persist the full agreement.

        Fails with Conflict when the stored copy moved on since
        ``agreement`` was loaded, or when the write breaks an invariant.
        """
        with self.database.session() as db:
            row = db.get(AgreementRow, agreement.id)
            if row is None:
                raise NotFound("Agreement not found")
            validate_transition(row.to_record(), agreement)

            next_version = agreement.version + 1
            result = db.execute(
                update(AgreementRow)
                .where(AgreementRow.id == agreement.id)
                .where(AgreementRow.version == agreement.version)
                .values(
                    version=next_version,
                    email=agreement.email,
                    payload_json=agreement.model_dump_json(exclude={"version"}),
                    updated_at=_utcnow(),
                )
            )
            if result.rowcount != 1:
                db.rollback()
                logger.warning(f"AGREEMENT_SAVE_STALE id={agreement.id} version={agreement.version}")
                raise Conflict("Agreement was modified by another request")
            db.commit()

        agreement.version = next_version
        return agreement


class SummaryStore:
    """Pricing summaries, most recent per email."""

    def __init__(self, database: Database):
        self.database = database

    def save(self, summary: Summary) -> Summary:
        with self.database.session() as db:
            db.add(SummaryRow(
                id=summary.id,
                email=summary.email,
                payload_json=summary.model_dump_json(),
                created_at=summary.created_at,
            ))
            db.commit()
        return summary

    def latest_for_email(self, email: str) -> Optional[Summary]:
        if not email:
            return None
        with self.database.session() as db:
            row = db.execute(
                select(SummaryRow)
                .where(SummaryRow.email == email)
                .order_by(SummaryRow.created_at.desc())
                .limit(1)
            ).scalar_one_or_none()
            return row.to_record() if row else None


class ClientStore:
    """Intake logins."""

    def __init__(self, database: Database):
        self.database = database

    def save(self, business_name: str, email: str, phone: str) -> dict:
        with self.database.session() as db:
            row = ClientLoginRow(
                id=uuid.uuid4().hex,
                business_name=business_name or "",
                email=email or "",
                phone=phone or "",
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return row.to_dict()
