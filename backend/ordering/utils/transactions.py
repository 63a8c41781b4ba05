from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy.orm import Session


@contextmanager
def unit_of_work(
    session: Session,
    on_error: Optional[Callable[[Exception], Exception]] = None,
) -> Iterator[Session]:
    """
    Run the block as one all-or-nothing write and commit it.

    Reads done before entering keep their transaction; the block then runs in
    a SAVEPOINT inside it, otherwise in a fresh transaction. Any exception
    rolls the whole session back. ``on_error`` turns the original exception
    into the one the caller sees; without it the original is re-raised.

        with unit_of_work(db, on_error=lambda exc: OrderCreationError()):
            ... DB work ...
    """
    try:
        if session.in_transaction():
            with session.begin_nested():
                yield session
        else:
            with session.begin():
                yield session
        session.commit()
    except Exception as exc:
        session.rollback()
        if on_error is None:
            raise
        raise on_error(exc) from exc
