import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _connect_args(db_url: str) -> dict:
    if db_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


INVENTORY_DB_URL = _require_env("INVENTORY_DB_URL")

engine_inventory = create_engine(
    INVENTORY_DB_URL,
    pool_pre_ping=True,
    connect_args=_connect_args(INVENTORY_DB_URL),
    future=True,
)

SessionLocalInventory = sessionmaker(
    bind=engine_inventory,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)
