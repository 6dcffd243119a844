"""
SQLAlchemy ORM models for the SQL snapshot backend.

These models are internal to SqlAlchemyGateway. Callers only see the
namespace/blob interface of the persistence gateway.
"""

from sqlalchemy import Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class SnapshotORM(Base):
    """SQLAlchemy model for snapshots table, one row per namespace."""

    __tablename__ = "snapshots"

    namespace: Mapped[str] = mapped_column(Text, primary_key=True)
    blob: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
