"""
Database Models
"""
from app.db.models.order import OrderRecord

__all__ = [
    "OrderRecord",
]
