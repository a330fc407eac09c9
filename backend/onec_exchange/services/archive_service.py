"""
Распаковка zip-архивов, присланных 1С (ответ init: zip=yes).

Сначала используется системный unzip, при его отсутствии или ошибке -
zipfile. В резервном пути архив проверяется целиком до распаковки:
элементы с "..", абсолютными путями или буквой диска отвергаются.
"""
import logging
import re
import shutil
import subprocess
import zipfile
from pathlib import Path

from onec_exchange.exceptions import ArchiveError

logger = logging.getLogger(__name__)

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


def check_member_name(name: str) -> None:
    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or _DRIVE_LETTER.match(normalized):
        raise ArchiveError(f"Absolute path in archive: {name}")
    if ".." in normalized.split("/"):
        raise ArchiveError(f"Path traversal in archive: {name}")


def _unpack_native(archive: Path, directory: Path) -> bool:
    unzip = shutil.which("unzip")
    if not unzip:
        return False
    try:
        result = subprocess.run(
            [unzip, "-qqo", str(archive), "-d", str(directory)],
            capture_output=True,
            timeout=600,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"Системный unzip не запустился для {archive.name}: {e}")
        return False
    if result.returncode != 0:
        logger.warning(
            f"unzip завершился с кодом {result.returncode} для {archive.name}, "
            f"используем zipfile"
        )
        return False
    return True


def _unpack_fallback(archive: Path, directory: Path) -> None:
    try:
        with zipfile.ZipFile(archive) as zf:
            members = zf.infolist()
            for member in members:
                check_member_name(member.filename)
            zf.extractall(directory)
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"Failed to open archive {archive.name}: {e}") from e
    except OSError as e:
        raise ArchiveError(f"Failed to extract archive {archive.name}: {e}") from e


def unpack_archives(directory: Path, use_native: bool = True) -> int:
    """Распаковывает все *.zip каталога в него же и удаляет архивы"""
    directory = Path(directory)
    archives = sorted(directory.glob("*.zip"))
    for archive in archives:
        if not (use_native and _unpack_native(archive, directory)):
            _unpack_fallback(archive, directory)
        try:
            archive.unlink()
        except OSError as e:
            raise ArchiveError(f"Failed to delete archive {archive.name}: {e}") from e
        logger.info(f"Архив {archive.name} распакован")
    return len(archives)
