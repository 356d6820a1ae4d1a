# models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    create_engine,
    JSON,
    String,
    Integer,
    DateTime,
    ForeignKey,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
    sessionmaker,
)
from sqlalchemy.engine import make_url

# Post types that have a printable document
POST_TYPES = ("timecard", "receipt", "daily_report", "jsa_report")


# -----------------------------
# SQLAlchemy base
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Tables
# -----------------------------
class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    address: Mapped[str] = mapped_column(String(300), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    posts: Mapped[list["FeedPost"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="FeedPost.id",
    )


class FeedPost(Base):
    """
    One entry in a project's feed. `content` holds the record exactly as the
    client stored it (timecard, receipt, daily report, JSA, or plain text/photos).
    """
    __tablename__ = "feed_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    post_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    content: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    photo_urls: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    project: Mapped["Project"] = relationship(back_populates="posts")

    def has_document(self) -> bool:
        return self.post_type in POST_TYPES


class CompanySettings(Base):
    """Single-row table; the logo shows up in document headers."""
    __tablename__ = "company_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    logo_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)


# -----------------------------
# Document input records
# -----------------------------
def _str(d: dict, *keys: str) -> str:
    """First non-null value among `keys`, as a string."""
    for key in keys:
        val = d.get(key)
        if val is not None:
            return str(val)
    return ""


def _num(d: dict, key: str) -> float:
    try:
        return float(d.get(key) or 0.0)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class TimeEntry:
    employee_name: str
    time_in: str
    time_out: str
    lunch_minutes: int
    total_hours: float

    @classmethod
    def from_dict(cls, d: dict) -> "TimeEntry":
        return cls(
            employee_name=_str(d, "employee_name"),
            time_in=_str(d, "time_in"),
            time_out=_str(d, "time_out"),
            lunch_minutes=int(_num(d, "lunch_minutes")),
            total_hours=_num(d, "total_hours"),
        )


@dataclass
class TimecardContent:
    project_name: str
    date: str
    address: str
    entries: list[TimeEntry]
    grand_total_hours: float

    @classmethod
    def from_dict(cls, d: dict) -> "TimecardContent":
        return cls(
            project_name=_str(d, "project_name"),
            date=_str(d, "date"),
            address=_str(d, "address"),
            entries=[TimeEntry.from_dict(e) for e in (d.get("entries") or [])],
            grand_total_hours=_num(d, "grand_total_hours"),
        )


@dataclass
class ReceiptContent:
    vendor_name: str
    receipt_date: str
    total_amount: float
    category: str

    @classmethod
    def from_dict(cls, d: dict) -> "ReceiptContent":
        return cls(
            vendor_name=_str(d, "vendor_name"),
            receipt_date=_str(d, "receipt_date"),
            total_amount=_num(d, "total_amount"),
            category=_str(d, "category"),
        )


@dataclass
class DailyReportContent:
    project_name: str = ""
    date: str = ""
    address: str = ""
    reported_by: str = ""
    project_foreman: str = ""
    weather: str = ""
    progress: str = ""
    delays: str = ""
    safety: str = ""
    materials_used: str = ""
    employees: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> "DailyReportContent":
        return cls(**{name: _str(d, name) for name in cls.__dataclass_fields__})


@dataclass
class JsaTask:
    name: str
    hazards: str = ""
    precautions: str = ""
    ppe: str = ""


@dataclass
class JsaSignature:
    name: str = ""
    # data: URL of the captured signature (PNG)
    signature: str = ""


@dataclass
class JsaReportContent:
    project_name: str = ""
    date: str = ""
    address: str = ""
    weather: str = ""
    prepared_by: str = ""
    site_supervisor: str = ""
    competent_person: str = ""
    tasks: list[JsaTask] = field(default_factory=list)
    signatures: list[JsaSignature] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict) -> "JsaReportContent":
        return cls(
            # records saved by the web client use camelCase keys
            project_name=_str(d, "project_name", "projectName"),
            date=_str(d, "date"),
            address=_str(d, "address"),
            weather=_str(d, "weather"),
            prepared_by=_str(d, "prepared_by", "preparedBy"),
            site_supervisor=_str(d, "site_supervisor", "siteSupervisor"),
            competent_person=_str(d, "competent_person", "competentPerson"),
            tasks=[
                JsaTask(
                    name=_str(t, "name"),
                    hazards=_str(t, "hazards"),
                    precautions=_str(t, "precautions"),
                    ppe=_str(t, "ppe"),
                )
                for t in (d.get("tasks") or [])
            ],
            signatures=[
                JsaSignature(name=_str(s, "name"), signature=_str(s, "signature"))
                for s in (d.get("signatures") or [])
            ],
        )


# -----------------------------
# Engine / Session factory
# -----------------------------
def ensure_sqlite_dir(db_url: str) -> Path | None:
    """Create the folder holding a file-backed SQLite database. Other backends are left alone."""
    url = make_url(db_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return None
    folder = Path(url.database).parent
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def make_engine(db_url: str, echo: bool = False):
    """
    Create SQLAlchemy engine.
    Note: a SQLite file needs its folder to exist first, see `ensure_sqlite_dir`.
    """
    return create_engine(db_url, echo=echo, future=True)


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
