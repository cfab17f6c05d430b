from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.sql import func

from chatline.core.database import Base


class Document(Base):
    """One schemaless JSON document inside a named collection"""

    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    id = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_documents_collection", "collection"),
    )
