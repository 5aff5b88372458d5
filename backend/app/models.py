from sqlalchemy import Column, DateTime, Index, Integer, JSON, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from .db import Base


class ProfileDocument(Base):
    """One player profile stored as a JSON document.

    ``version`` is SQLAlchemy's version counter: an UPDATE only succeeds when
    the row still carries the version that was read, otherwise the flush
    raises ``StaleDataError``.
    """

    __tablename__ = "profile"
    id = Column(String, primary_key=True)
    username = Column(String, nullable=False)
    version = Column(Integer, nullable=False)
    document = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("uq_profile_username_lower", func.lower(username), unique=True),
    )


class MatchDocument(Base):
    __tablename__ = "match"
    id = Column(String, primary_key=True)
    match_type = Column(String, nullable=False)  # "singles" | "doubles"
    played_at = Column(DateTime, nullable=False)
    created_by = Column(String, nullable=True)
    document = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (Index("ix_match_played_at", played_at),)
