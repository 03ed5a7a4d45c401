"""
Campaign model - an outbound calling campaign that groups leads.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Integer
from sqlalchemy.orm import relationship

from ..database import Base


class Campaign(Base):
    """Campaign model - groups imported leads."""

    __tablename__ = "campaigns"

    # Primary key
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Campaign info
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default="draft")  # draft/active/paused/completed

    # Stats
    total_leads = Column(Integer, default=0)

    # Leads relationship
    leads = relationship("Lead", back_populates="campaign", lazy="dynamic")

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Campaign {self.name}>"
