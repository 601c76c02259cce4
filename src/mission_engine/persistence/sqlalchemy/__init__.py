from .base import Base
from .db import build_engine, build_session_factory, create_schema
from .uow import SQLAlchemyUnitOfWork

__all__ = ["Base", "build_engine", "build_session_factory", "create_schema", "SQLAlchemyUnitOfWork"]
