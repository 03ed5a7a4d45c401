"""
Lead model - a contact queued for an outbound calling campaign.
"""
import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base


class LeadStatus(str, Enum):
    """Calling status for leads."""
    PENDING = "pending"          # Imported, not yet called
    CALLING = "calling"          # Call in progress
    COMPLETED = "completed"      # Call finished with an outcome
    FAILED = "failed"            # All attempts exhausted
    ESCALATED = "escalated"      # Handed over to a human agent
    CALLBACK = "callback"        # Callback requested


class Lead(Base):
    """Lead model - a person to be called."""

    __tablename__ = "leads"

    # Primary key
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Contact info
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False, index=True)
    email = Column(String(255), nullable=True, index=True)
    company = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Calling state
    status = Column(String(50), default=LeadStatus.PENDING.value)
    call_attempts = Column(Integer, default=0)
    last_call_at = Column(DateTime, nullable=True)

    # Import provenance
    source_file = Column(String(255), nullable=True)

    # Campaign relationship
    campaign_id = Column(String(36), ForeignKey("campaigns.id"), nullable=True)
    campaign = relationship("Campaign", back_populates="leads")

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Lead {self.name} - {self.phone}>"
