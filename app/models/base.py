"""Базовый класс ORM-моделей турнира."""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Имена индексов совпадают с теми, что создают миграции alembic.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
