from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from .repos import (
    CharacterRepo,
    ConfigRepo,
    FactRepo,
    GameSessionRepo,
    LogRepo,
    PlayerRepo,
    RoomRepo,
    WorldRepo,
)


class SQLAlchemyUnitOfWork:
    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self.session: Session | None = None

    def __enter__(self) -> "SQLAlchemyUnitOfWork":
        self.session = self._session_factory()
        self.worlds = WorldRepo(self.session)
        self.rooms = RoomRepo(self.session)
        self.characters = CharacterRepo(self.session)
        self.players = PlayerRepo(self.session)
        self.sessions = GameSessionRepo(self.session)
        self.config = ConfigRepo(self.session)
        self.logs = LogRepo(self.session)
        self.facts = FactRepo(self.session)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.session is None:
            return
        if exc_type is not None:
            self.rollback()
        self.session.close()

    def ping(self) -> bool:
        assert self.session is not None
        return self.session.execute(text("SELECT 1")).scalar() == 1

    def commit(self) -> None:
        assert self.session is not None
        self.session.commit()

    def rollback(self) -> None:
        assert self.session is not None
        self.session.rollback()
