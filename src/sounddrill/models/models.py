"""Database models for persisted ledgers."""
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from sounddrill.models.base import Base, TimestampMixin


class Learner(Base, TimestampMixin):
    """Owner of one persisted ledger."""

    __tablename__ = "learners"

    id = Column(Integer, primary_key=True, index=True)
    user_key = Column(String, unique=True, nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    total_attempts = Column(Integer, default=0, nullable=False)
    total_correct = Column(Integer, default=0, nullable=False)
    version = Column(Integer, default=0, nullable=False)  # ledger version of the stored snapshot
    lineage = Column(String, nullable=True)  # versions are comparable within one lineage

    # Relationships
    records = relationship("ItemRecord", back_populates="learner", cascade="all, delete-orphan")
    sessions = relationship(
        "SessionEntry",
        back_populates="learner",
        cascade="all, delete-orphan",
        order_by="SessionEntry.position",
    )


class ItemRecord(Base, TimestampMixin):
    """Accuracy record for one sound, pair or word."""

    __tablename__ = "item_records"
    __table_args__ = (UniqueConstraint("learner_id", "kind", "key", name="uq_item_record"),)

    id = Column(Integer, primary_key=True)
    learner_id = Column(Integer, ForeignKey("learners.id"), nullable=False)
    kind = Column(String, nullable=False)  # sound, pair, word
    key = Column(String, nullable=False)
    correct = Column(Integer, default=0, nullable=False)
    total = Column(Integer, default=0, nullable=False)
    last_attempt = Column(DateTime(timezone=True), nullable=True)
    details = Column(JSON, default=dict)  # attempt metadata

    # Relationships
    learner = relationship("Learner", back_populates="records")


class SessionEntry(Base, TimestampMixin):
    """One completed practice session."""

    __tablename__ = "session_entries"

    id = Column(Integer, primary_key=True)
    learner_id = Column(Integer, ForeignKey("learners.id"), nullable=False)
    position = Column(Integer, nullable=False)  # order in the session history
    mode = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    stats = Column(JSON, default=dict)

    # Relationships
    learner = relationship("Learner", back_populates="sessions")
