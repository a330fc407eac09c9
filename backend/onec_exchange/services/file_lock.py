"""
Эксклюзивная неблокирующая блокировка файла на время импорта.
Второй прогон по тому же файлу сразу получает ExchangeLockError.
"""
import sys
from contextlib import contextmanager
from typing import BinaryIO, Iterator

from onec_exchange.exceptions import ExchangeLockError

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl


def _lock(fp: BinaryIO) -> None:
    if sys.platform == "win32":
        fp.seek(0)
        msvcrt.locking(fp.fileno(), msvcrt.LK_NBLCK, 1)
    else:
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)


def _unlock(fp: BinaryIO) -> None:
    if sys.platform == "win32":
        fp.seek(0)
        msvcrt.locking(fp.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(fp.fileno(), fcntl.LOCK_UN)


@contextmanager
def exclusive_lock(fp: BinaryIO, name: str = "") -> Iterator[BinaryIO]:
    try:
        _lock(fp)
    except OSError as e:
        raise ExchangeLockError(f"Failed to lock file {name or fp.name}: already in use") from e
    try:
        yield fp
    finally:
        _unlock(fp)
