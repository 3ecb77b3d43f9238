import os
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine


DEFAULT_DATABASE_URL = "sqlite:///./achayapathra.db"


def create_db_engine(url: Optional[str] = None, **kwargs) -> Engine:
    url = url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)

    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        kwargs["connect_args"] = connect_args

    return create_engine(url, **kwargs)


def init_db(engine: Engine):
    # register every table on the metadata before create_all
    from achayapathra.models import claim, donation, event, hygiene, user  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session(request: Request):
    with Session(request.app.state.engine) as session:
        yield session
