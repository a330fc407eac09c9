"""
Сборка файлов выгрузки из порций (mode=file).

1С отправляет большой файл несколькими POST с одним и тем же filename.
Каждая порция сначала пишется во временный файл "<имя>~", затем
дописывается в целевой. Порция, начинающаяся с пролога XML, означает новый
файл: старый с тем же именем удаляется.
"""
import logging
import shutil
from pathlib import Path

from onec_exchange.exceptions import ExchangeFileError

logger = logging.getLogger(__name__)

XML_PROLOG = b"<?xml "
PROLOG_WINDOW = 32


def temp_path_for(target_path: Path) -> Path:
    return target_path.with_name(target_path.name + "~")


def append_chunk(target_path: Path, data: bytes) -> int:
    """Дописывает порцию в target_path; возвращает итоговый размер файла"""
    target_path = Path(target_path)
    temp_path = temp_path_for(target_path)

    try:
        with open(temp_path, "wb") as temp_file:
            temp_file.write(data)
    except OSError as e:
        raise ExchangeFileError(f"Failed to write temporary file {temp_path.name}: {e}") from e

    try:
        if target_path.exists() and XML_PROLOG in data[:PROLOG_WINDOW]:
            logger.info(f"Получено начало нового файла {target_path.name}, старая копия удалена")
            target_path.unlink()
        with open(temp_path, "rb") as temp_file, open(target_path, "ab") as target_file:
            shutil.copyfileobj(temp_file, target_file)
        size = target_path.stat().st_size
    except OSError as e:
        raise ExchangeFileError(f"Failed to append to file {target_path.name}: {e}") from e
    finally:
        try:
            temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Не удалось удалить временный файл {temp_path.name}: {e}")

    logger.debug(f"Порция {len(data)} байт дописана в {target_path.name}, размер {size}")
    return size


def prepare_directory(directory: Path, cleanup: bool = True) -> Path:
    """Создаёт рабочий каталог; при cleanup удаляет остатки прошлого обмена"""
    directory = Path(directory)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        if cleanup:
            removed = 0
            for path in directory.iterdir():
                if path.is_dir():
                    shutil.rmtree(path)
                else:
                    path.unlink()
                removed += 1
            if removed:
                logger.info(f"Каталог обмена {directory} очищен, удалено объектов: {removed}")
    except OSError as e:
        raise ExchangeFileError(f"Failed to prepare directory {directory}: {e}") from e
    return directory
