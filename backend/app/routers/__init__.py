"""
API routers.
"""
from .csv_import import router as csv_import_router

__all__ = ["csv_import_router"]
