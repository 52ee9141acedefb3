from sqlalchemy import Column, Integer, String, Text

from iplookup.core.database import Base


class RdapCacheEntry(Base):
    __tablename__ = "rdap_cache"

    ip = Column(String, primary_key=True)  # canonical address text
    response_json = Column(Text, nullable=False)
    fetched_at = Column(Integer, nullable=False)  # epoch milliseconds
