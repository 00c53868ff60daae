"""SQLAlchemy models for the EMS schema."""

from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    # naive UTC; SQLite drops tzinfo on round-trip
    return datetime.now(UTC).replace(tzinfo=None)


class Base(DeclarativeBase):
    def to_dict(self, exclude: tuple[str, ...] = ()) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for col in self.__table__.columns:
            if col.key in exclude:
                continue
            val = getattr(self, col.key)
            if isinstance(val, datetime | date):
                val = val.isoformat()
            out[col.key] = val
        return out


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


# --- Allowed values (validated at the API boundary) ---
DEPARTMENT_STATUSES = ("Active", "Inactive")
EMPLOYEE_STATUSES = ("Active", "Inactive", "On Leave", "Terminated")
SOFTWARE_STATUSES = ("active", "inactive", "expired")
LICENSE_TYPES = (
    "Single User", "Multi User", "Site License", "Volume License",
    "Enterprise", "Trial", "Open Source", "Freeware",
)
LICENSE_STATUSES = ("Active", "Expired", "Suspended", "Available", "Maintenance", "Deprecated")
HARDWARE_CATEGORIES = (
    "Laptop", "Desktop", "Monitor", "Keyboard", "Mouse", "Printer", "Scanner",
    "Network Device", "Mobile Device", "Tablet", "Server", "Other",
)
HARDWARE_STATUSES = ("Available", "Assigned", "Maintenance", "Retired", "Lost", "Stolen")
INTEGRATION_TYPES = ("API", "Database", "File Transfer", "Webhook", "SSH", "FTP", "SFTP", "Email", "SMS", "Other")
INTEGRATION_STATUSES = ("Active", "Inactive", "Error", "Maintenance", "Testing")
TICKET_CATEGORIES = (
    "Hardware", "Software", "Network", "Account", "Security", "Access",
    "Email", "VPN", "Printer", "Phone", "Mobile", "Other",
)
TICKET_PRIORITIES = ("Low", "Medium", "High", "Critical", "Emergency")
TICKET_STATUSES = ("Open", "In Progress", "Resolved", "Closed", "Cancelled", "On Hold", "Escalated")
TICKET_EVENT_TYPES = ("assigned", "status_change", "priority_change", "reassigned")
TIME_STATUSES = ("checked_in", "checked_out")


# --- Organisation ---
class Department(TimestampMixin, Base):
    __tablename__ = "departments"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    manager_id: Mapped[int] = mapped_column(Integer, nullable=True)  # employees.id, kept FK-free to avoid a cycle
    budget: Mapped[float] = mapped_column(Float, nullable=True)
    location: Mapped[str] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="Active")


class Employee(TimestampMixin, Base):
    __tablename__ = "employees"
    id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[str] = mapped_column(String(50), unique=True)  # human-facing code, e.g. EMP001
    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    contact_email: Mapped[str] = mapped_column(String(200), unique=True, nullable=True)
    phone: Mapped[str] = mapped_column(String(50), nullable=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id"), nullable=True)
    position: Mapped[str] = mapped_column(String(100), nullable=True)
    hire_date: Mapped[date] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="Active")
    ms_graph_user_id: Mapped[str] = mapped_column(String(100), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserRoleMap(TimestampMixin, Base):
    """Local authorization record for an identity-provider account.

    Either ``employee_id`` or ``email`` is expected to be set, but the check is
    deliberately not enforced (see DESIGN.md, open questions).
    """

    __tablename__ = "user_role_maps"
    id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=True)
    ms_graph_user_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=True)
    email: Mapped[str] = mapped_column(String(200), unique=True, nullable=True)
    role: Mapped[str] = mapped_column(String(20), default="employee")
    permissions: Mapped[dict] = mapped_column(JSON, nullable=True)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    failed_login_attempts: Mapped[int] = mapped_column(Integer, default=0)
    account_locked_until: Mapped[datetime] = mapped_column(DateTime, nullable=True)

    __table_args__ = (Index("ix_user_role_maps_active", "is_active"),)


# --- Assets ---
class Software(TimestampMixin, Base):
    __tablename__ = "software"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    version: Mapped[str] = mapped_column(String(50), nullable=True)
    vendor: Mapped[str] = mapped_column(String(200), nullable=True)
    license_key: Mapped[str] = mapped_column(String(255), nullable=True)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    assigned_to: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=True, index=True)


class License(TimestampMixin, Base):
    __tablename__ = "licenses"
    id: Mapped[int] = mapped_column(primary_key=True)
    license_key: Mapped[str] = mapped_column(String(255), unique=True)
    software_id: Mapped[int] = mapped_column(ForeignKey("software.id"), nullable=True)
    license_type: Mapped[str] = mapped_column(String(30), default="Single User")
    max_users: Mapped[int] = mapped_column(Integer, default=1)
    current_users: Mapped[int] = mapped_column(Integer, default=0)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=True)
    cost: Mapped[float] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="Active")
    assigned_to: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=True, index=True)
    assigned_date: Mapped[date] = mapped_column(Date, nullable=True)
    vendor: Mapped[str] = mapped_column(String(200), nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=True)
    renewal_date: Mapped[date] = mapped_column(Date, nullable=True)
    support_level: Mapped[str] = mapped_column(String(50), nullable=True)
    compliance_status: Mapped[str] = mapped_column(String(50), nullable=True)


class Hardware(TimestampMixin, Base):
    __tablename__ = "hardware"
    id: Mapped[int] = mapped_column(primary_key=True)
    asset_tag: Mapped[str] = mapped_column(String(50), unique=True)
    name: Mapped[str] = mapped_column(String(200))
    category: Mapped[str] = mapped_column(String(30))
    brand: Mapped[str] = mapped_column(String(100), nullable=True)
    model: Mapped[str] = mapped_column(String(100), nullable=True)
    serial_number: Mapped[str] = mapped_column(String(100), nullable=True)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=True)
    purchase_price: Mapped[float] = mapped_column(Float, nullable=True)
    warranty_expiry: Mapped[date] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="Available")
    assigned_to: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=True, index=True)
    location: Mapped[str] = mapped_column(String(200), nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=True)
    specifications: Mapped[dict] = mapped_column(JSON, nullable=True)


class Integration(TimestampMixin, Base):
    __tablename__ = "integrations"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    type: Mapped[str] = mapped_column(String(30))
    description: Mapped[str] = mapped_column(Text, nullable=True)
    endpoint_url: Mapped[str] = mapped_column(String(500), nullable=True)
    authentication_type: Mapped[str] = mapped_column(String(50), nullable=True)
    credentials: Mapped[str] = mapped_column(Text, nullable=True)
    configuration: Mapped[dict] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="Active")
    last_sync: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    sync_frequency: Mapped[str] = mapped_column(String(50), nullable=True)
    managed_by: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("user_role_maps.id"), nullable=True)
    updated_by: Mapped[int] = mapped_column(ForeignKey("user_role_maps.id"), nullable=True)


# --- Helpdesk ---
class Ticket(TimestampMixin, Base):
    __tablename__ = "tickets"
    id: Mapped[int] = mapped_column(primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(50), unique=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(30))
    priority: Mapped[str] = mapped_column(String(20), default="Medium")
    status: Mapped[str] = mapped_column(String(20), default="Open")
    created_by: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=True, index=True)
    assigned_to: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=True, index=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=True)
    resolved_date: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    resolution: Mapped[str] = mapped_column(Text, nullable=True)


class TicketEvent(Base):
    __tablename__ = "ticket_events"
    id: Mapped[int] = mapped_column(primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    event_type: Mapped[str] = mapped_column(String(30))
    old_value: Mapped[str] = mapped_column(String(200), nullable=True)
    new_value: Mapped[str] = mapped_column(String(200), nullable=True)
    changed_by: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class TicketComment(Base):
    __tablename__ = "ticket_comments"
    id: Mapped[int] = mapped_column(primary_key=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), index=True)
    author_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=True)
    body: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


# --- Attendance ---
class TimeTracking(TimestampMixin, Base):
    __tablename__ = "time_tracking"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_role_maps.id"), index=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=True)
    work_date: Mapped[date] = mapped_column(Date, index=True)
    check_in_time: Mapped[datetime] = mapped_column(DateTime)
    check_out_time: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    location: Mapped[dict] = mapped_column(JSON, nullable=True)
    total_hours: Mapped[float] = mapped_column(Float, nullable=True)
    overtime_hours: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String(20), default="checked_in")
    notes: Mapped[str] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str] = mapped_column(String(500), nullable=True)
    device_info: Mapped[dict] = mapped_column(JSON, nullable=True)

    # at most one open session per account
    __table_args__ = (
        Index(
            "uq_time_tracking_open_session",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'checked_in'"),
            postgresql_where=text("status = 'checked_in'"),
        ),
    )


class BiometricEmployee(Base):
    __tablename__ = "biometric_employees"
    id: Mapped[int] = mapped_column(primary_key=True)
    employee_code: Mapped[str] = mapped_column(String(50), unique=True)
    name: Mapped[str] = mapped_column(String(200))
    device_id: Mapped[str] = mapped_column(String(100), nullable=True)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
