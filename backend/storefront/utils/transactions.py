from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.orm import Session


@contextmanager
def smart_transaction(session: Session) -> Iterator[Session]:
    """
    Context manager that begins a transaction on the given Session.
    If a transaction is already active, start a nested SAVEPOINT (begin_nested).
    Otherwise start a normal transaction (begin), committed on exit.
    Usage:
        with smart_transaction(db):
            ... DB work ...
    """
    if session.in_transaction():
        cm = session.begin_nested()
    else:
        cm = session.begin()
    with cm:
        yield session


@contextmanager
def short_lived_session(session_factory: Callable[[], Session]) -> Iterator[Session]:
    """
    Fresh session for a single remote write, so that the write commits (or
    rolls back) independently of anything else the caller is doing.
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
