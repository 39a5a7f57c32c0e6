"""
TradeTrack — Record model.
One row per document of the record store: (collection, key) → JSON body.
"""

import uuid

from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint, func

from tradetrack.database import Base


class Record(Base):
    """A schemaless document addressed by collection + key."""
    __tablename__ = "records"
    __table_args__ = (UniqueConstraint("collection", "key", name="uq_records_collection_key"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Sub-logs use slash paths, e.g. "activityLogs/0xAbc.../history"
    collection = Column(String(200), nullable=False, index=True)
    key = Column(String(200), nullable=False)

    data = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Record {self.collection}/{self.key}>"
