# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Relational schema for incidents and the directory rows they reference."""
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

# ── Directory (managed elsewhere, read here for labels) ───────────────────

users = Table(
    "users", metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False, default=""),
    Column("email", String(255), nullable=False),
)

teams = Table(
    "teams", metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
)

services = Table(
    "services", metadata,
    Column("id", String(64), primary_key=True),
    Column("key", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
)

categories = Table(
    "categories", metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
)

tags = Table(
    "tags", metadata,
    Column("id", String(64), primary_key=True),
    Column("label", String(255), nullable=False),
)

# ── Incidents ─────────────────────────────────────────────────────────────

incidents = Table(
    "incidents", metadata,
    Column("id", String(64), primary_key=True),
    Column("title", String(500), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("status", String(32), nullable=False),
    Column("severity", String(8), nullable=False),
    Column("reporter_id", String(64), ForeignKey("users.id"), nullable=False),
    Column("assignee_id", String(64), ForeignKey("users.id"), nullable=True),
    Column("team_id", String(64), ForeignKey("teams.id"), nullable=True),
    Column("primary_service_id", String(64), ForeignKey("services.id"), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("triaged_at", DateTime(timezone=True), nullable=True),
    Column("in_progress_at", DateTime(timezone=True), nullable=True),
    Column("resolved_at", DateTime(timezone=True), nullable=True),
    Column("closed_at", DateTime(timezone=True), nullable=True),
    Column("audit_hash", String(64), nullable=True),
    Column("audit_hash_updated_at", DateTime(timezone=True), nullable=True),
)

incident_categories = Table(
    "incident_categories", metadata,
    Column("incident_id", String(64), ForeignKey("incidents.id"), primary_key=True),
    Column("category_id", String(64), ForeignKey("categories.id"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False),
)

incident_tags = Table(
    "incident_tags", metadata,
    Column("incident_id", String(64), ForeignKey("incidents.id"), primary_key=True),
    Column("tag_id", String(64), ForeignKey("tags.id"), primary_key=True),
)

# Append-only: the repository exposes insert, read and whole-incident purge only.
incident_timeline = Table(
    "incident_timeline", metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(64), nullable=False, unique=True),
    Column("incident_id", String(64), ForeignKey("incidents.id"), nullable=False, index=True),
    Column("type", String(32), nullable=False),
    Column("from_status", String(32), nullable=True),
    Column("to_status", String(32), nullable=True),
    Column("message", Text, nullable=True),
    Column("author_id", String(64), ForeignKey("users.id"), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

incident_comments = Table(
    "incident_comments", metadata,
    Column("id", String(64), primary_key=True),
    Column("incident_id", String(64), ForeignKey("incidents.id"), nullable=False, index=True),
    Column("author_id", String(64), ForeignKey("users.id"), nullable=False),
    Column("body", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

notification_subscriptions = Table(
    "notification_subscriptions", metadata,
    Column("id", String(64), primary_key=True),
    Column("incident_id", String(64), ForeignKey("incidents.id"), nullable=False),
    Column("user_id", String(64), ForeignKey("users.id"), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("incident_id", "user_id", name="uq_subscription_incident_user"),
)
