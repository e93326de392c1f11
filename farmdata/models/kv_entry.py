"""
Key-value entry model for the durable store
"""

from sqlalchemy import Column, String, Text, DateTime, PrimaryKeyConstraint
from sqlalchemy.sql import func

from farmdata.core.database import Base


class KeyValueEntry(Base):
    """One origin-scoped string value (cache envelopes, session token)"""
    __tablename__ = "kv_entries"

    namespace = Column(String(64), nullable=False, index=True)
    key = Column(String(512), nullable=False)
    value = Column(Text, nullable=False)  # JSON text for cache entries

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        PrimaryKeyConstraint("namespace", "key"),
    )

    def __repr__(self):
        return f"<KeyValueEntry(namespace='{self.namespace}', key='{self.key}')>"
