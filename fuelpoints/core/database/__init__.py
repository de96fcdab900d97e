from fuelpoints.core.database.base import Base, IdMixin, PortableJSON, TimestampMixin
from fuelpoints.core.database.service import ConnectionMetrics, DatabaseService

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "PortableJSON",
    "ConnectionMetrics",
    "DatabaseService",
]
