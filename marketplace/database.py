from sqlmodel import SQLModel, create_engine, Session
from marketplace.config import settings


def _engine_kwargs():
    if settings.is_sqlite:
        # one connection per thread; writers wait on the database lock
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {
        "pool_pre_ping": True,   # checks dead connections
        "pool_recycle": 1800,    # refresh every 30 min
    }


engine = create_engine(
    settings.database_url,
    echo=settings.sql_echo,
    **_engine_kwargs(),
)


def create_db_and_tables():
    from marketplace import models  # noqa: F401  registers every table
    SQLModel.metadata.create_all(engine)


def drop_db_and_tables():
    from marketplace import models  # noqa: F401
    SQLModel.metadata.drop_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
