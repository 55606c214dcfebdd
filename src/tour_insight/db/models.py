"""ORM models for operator-curated analysis settings."""

from sqlalchemy import Column, Date, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class MadDelay(Base):
    """A warehouse/day flagged as a preparation (MAD) delay.

    Late deliveries of that warehouse on that day are excluded from
    transport punctuality figures when the exclusion filter is on.
    """

    __tablename__ = "mad_delays"

    key = Column(String(320), primary_key=True)  # "warehouse|YYYY-MM-DD"
    warehouse = Column(String(255), nullable=False, index=True)
    date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
