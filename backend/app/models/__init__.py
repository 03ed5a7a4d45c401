"""
SQLAlchemy models for the lead import pipeline.
"""
from .lead import Lead
from .campaign import Campaign

__all__ = [
    "Lead",
    "Campaign",
]
