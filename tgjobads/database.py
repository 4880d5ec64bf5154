"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for ads, duplicate stacks, salary records
and versioned vector artifacts.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class AdRow(Base):
    """Job advertisement extracted from a chat message."""

    __tablename__ = "ads"

    id = Column(String, primary_key=True)
    date = Column(Date, nullable=False, index=True)
    text = Column(Text, nullable=False)
    message_ref = Column(String, nullable=True)  # chat_id:message_id
    is_unique = Column(Boolean, nullable=False, default=True)
    stack_id = Column(String, ForeignKey("stacks.id"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class StackRow(Base):
    """Duplicate cluster; exactly one member ad is canonical."""

    __tablename__ = "stacks"

    id = Column(String, primary_key=True)
    canonical_id = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class SalaryRow(Base):
    """Salary and position level facts of one ad."""

    __tablename__ = "salaries"

    ad_id = Column(String, ForeignKey("ads.id"), primary_key=True)
    date = Column(Date, nullable=False)
    lower_bound = Column(Float, nullable=True)
    upper_bound = Column(Float, nullable=True)
    currency = Column(String, nullable=True)
    period = Column(String, nullable=True)
    lower_bound_normalized = Column(Float, nullable=True)
    upper_bound_normalized = Column(Float, nullable=True)
    currency_normalized = Column(String, nullable=True)
    status = Column(String, nullable=False, default="NotStarted")
    failure_reason = Column(String, nullable=True)
    level = Column(Integer, nullable=False, default=0)
    level_status = Column(String, nullable=False, default="NotStarted")
    classifier_version = Column(Integer, nullable=True)
    level_attempts = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class AdVectorRow(Base):
    """MinHash signature of an ad under one model version."""

    __tablename__ = "ad_vectors"
    __table_args__ = (UniqueConstraint("ad_id", "version", name="uq_ad_vectors_ad_version"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    ad_id = Column(String, ForeignKey("ads.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    dim = Column(Integer, nullable=False)
    signature = Column(LargeBinary, nullable=False)
    signature_hash = Column(String(64), nullable=True)
    shingle_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class LshBucketRow(Base):
    """One band key of one ad."""

    __tablename__ = "lsh_buckets"
    __table_args__ = (Index("ix_lsh_buckets_version_key", "version", "key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    version = Column(Integer, nullable=False)
    band = Column(Integer, nullable=False)
    key = Column(String, nullable=False)
    ad_id = Column(String, ForeignKey("ads.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class VectorModelVersionRow(Base):
    """Parameters of a vectorization model version."""

    __tablename__ = "vector_model_versions"

    version = Column(Integer, primary_key=True)
    normalization_version = Column(String, nullable=False)
    shingle_size = Column(Integer, nullable=False)
    shingle_unit = Column(String, nullable=False, default="char")
    hash_function_count = Column(Integer, nullable=False)
    min_hash_seed = Column(Integer, nullable=False)
    lsh_band_count = Column(Integer, nullable=False)
    lsh_rows_per_band = Column(Integer, nullable=False)
    vocabulary_size = Column(Integer, nullable=False)
    duplicate_threshold = Column(Float, nullable=False)
    similar_threshold = Column(Float, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = create_engine(f"sqlite:///{db_path}")
    Session = sessionmaker(bind=engine)
    return Session()
