"""
Database Module
"""

from .functions import (
    create_database,
    create_db_instance,
    create_db_security_group,
    create_db_subnet_group,
)

__all__ = [
    "create_database",
    "create_db_instance",
    "create_db_security_group",
    "create_db_subnet_group",
]
