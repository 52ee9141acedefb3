from sqlalchemy import Column, Integer, String

from iplookup.core.database import Base


class RateLimitCounter(Base):
    __tablename__ = "rate_limit"

    client = Column(String, primary_key=True)
    day = Column(String, primary_key=True)  # UTC YYYY-MM-DD
    count = Column(Integer, nullable=False, default=0)
