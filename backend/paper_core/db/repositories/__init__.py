"""
Paper Trading Core - Data Repositories

Repository interfaces consumed by the core, with in-memory and
SQLAlchemy implementations.
"""
from paper_core.db.repositories.fill import (
    FillRepository,
    InMemoryFillRepository,
    SqlFillRepository,
)
from paper_core.db.repositories.grid import (
    GridRepository,
    InMemoryGridRepository,
    SqlGridRepository,
)

__all__ = [
    "FillRepository",
    "InMemoryFillRepository",
    "SqlFillRepository",
    "GridRepository",
    "InMemoryGridRepository",
    "SqlGridRepository",
]
