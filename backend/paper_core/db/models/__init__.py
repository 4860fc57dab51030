"""
Paper Trading Core - Database Models
"""
from paper_core.db.models.fill import FillRecord
from paper_core.db.models.grid import GridRecord

__all__ = [
    "FillRecord",
    "GridRecord",
]
