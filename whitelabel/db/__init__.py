"""Database package: engine, ORM models, and CRUD facade."""

from whitelabel.db.engine import create_db_engine, create_session_factory
from whitelabel.db.facade import Database, LogEntryDict, StepResultDict
from whitelabel.db.orm import (
    Base,
    DeploymentLogRow,
    DeploymentRow,
    DomainClaimRow,
    StepResultRow,
)

__all__ = [
    "Base",
    "Database",
    "DeploymentLogRow",
    "DeploymentRow",
    "DomainClaimRow",
    "LogEntryDict",
    "StepResultDict",
    "StepResultRow",
    "create_db_engine",
    "create_session_factory",
]
