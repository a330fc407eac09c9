"""
Сервис обмена с 1С: начало прогона, приём файлов и импорт.

Один вызов import_file разбирает один файл целиком в одной транзакции БД:
open -> lock -> разбор -> сверка -> unlock -> close. Любое исключение
(включая превышение max_execution_time) откатывает все изменения файла.
"""
import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import anyio
from sqlalchemy.ext.asyncio import AsyncSession

from onec_exchange.config import ExchangeSettings, get_settings
from onec_exchange.exceptions import ExchangeError, ExchangeFileError, ExchangePathError, ExchangeXMLError
from onec_exchange.services.archive_service import unpack_archives
from onec_exchange.services.entity_store import EntityStore
from onec_exchange.services.exchange_events import exchange_events
from onec_exchange.services.file_lock import exclusive_lock
from onec_exchange.services.handlers import HANDLERS, create_handler
from onec_exchange.services.header_sniffer import sniff_header
from onec_exchange.services.reconciler import EntityReconciler, ExchangeRun
from onec_exchange.services.run_registry import run_registry
from onec_exchange.services.upload_service import append_chunk, prepare_directory
from onec_exchange.services.xml_event_source import ParseContext, XMLEventSource

logger = logging.getLogger(__name__)

EXCHANGE_TYPES = ("catalog", "sale")

_SAFE_FILENAME = re.compile(r"^[A-Za-z0-9._-]+$")
_NAMESPACE_PREFIX = re.compile(r"^([A-Za-z]+)")

UPLOAD_EXTENSIONS = (".xml", ".zip")
IMPORT_EXTENSIONS = (".xml",)


class ExchangeService:
    """Операции протокола обмена для type=catalog|sale"""

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[ExchangeSettings] = None,
        registry=run_registry,
        events=exchange_events,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.registry = registry
        self.events = events

    # ------------------------------------------------------------------
    # Пути

    def type_dir(self, exchange_type: str) -> Path:
        if exchange_type not in EXCHANGE_TYPES:
            raise ExchangePathError(f"Invalid exchange type: {exchange_type}")
        return self.settings.type_dir(exchange_type)

    def resolve_path(self, exchange_type: str, filename: str, extensions=UPLOAD_EXTENSIONS) -> Path:
        """
        Путь к файлу внутри каталога типа обмена. Недопустимое имя или выход
        за пределы каталога отвергаются до открытия файла.
        """
        if not filename or not _SAFE_FILENAME.match(filename) or filename in (".", ".."):
            raise ExchangePathError(f"Invalid filename: {filename!r}")
        if not filename.lower().endswith(extensions):
            raise ExchangePathError(f"Invalid file type: {filename}")

        base_dir = self.type_dir(exchange_type).resolve()
        path = (base_dir / filename).resolve()
        if path.parent != base_dir:
            raise ExchangePathError(f"Path traversal attempt detected: {filename}")
        return path

    @staticmethod
    def namespace_for(filename: str) -> str:
        """import0_1.xml -> import, offers0_1.xml -> offers"""
        match = _NAMESPACE_PREFIX.match(filename)
        namespace = match.group(1) if match else ""
        if namespace not in HANDLERS:
            raise ExchangeError(f"Unknown import file type: {namespace or filename}")
        return namespace

    # ------------------------------------------------------------------
    # mode=init / mode=file

    async def begin_run(self, exchange_type: str) -> int:
        """Подготовка каталога; возвращает file_limit в байтах"""
        directory = self.type_dir(exchange_type)
        prepare_directory(directory, cleanup=self.settings.cleanup_garbage)
        file_limit = self.settings.file_limit_bytes()
        logger.info(f"Начало обмена {exchange_type}, file_limit={file_limit}")
        return file_limit

    async def append_file(self, exchange_type: str, filename: Optional[str], data: bytes) -> str:
        """
        Приём порции файла. Для sale после приёма распаковываются архивы и
        импортируются все *.xml каталога как заказы.
        """
        if filename:
            path = self.resolve_path(exchange_type, filename)
            prepare_directory(path.parent, cleanup=False)
            size = append_chunk(path, data)
            logger.info(f"Файл принят: {exchange_type}/{filename}, размер {size}")

        if exchange_type == "sale":
            directory = self.type_dir(exchange_type)
            await anyio.to_thread.run_sync(unpack_archives, directory)
            for path in sorted(directory.glob("*.xml")):
                await self.import_file(exchange_type, path.name, namespace="orders")
        return "success"

    # ------------------------------------------------------------------
    # mode=import

    async def import_file(self, exchange_type: str, filename: str, namespace: Optional[str] = None) -> str:
        """
        Импорт одного файла. Возвращает "progress", если для catalog были
        только что распакованы архивы (1С повторит запрос), иначе "success".
        Фатальные ошибки пробрасываются как ExchangeError.
        """
        path = self.resolve_path(exchange_type, filename, IMPORT_EXTENSIONS)

        if exchange_type == "catalog" and await anyio.to_thread.run_sync(unpack_archives, path.parent):
            logger.info(f"Архивы каталога распакованы, ожидаем повторный запрос импорта {filename}")
            return "progress"

        namespace = namespace or self.namespace_for(filename)
        run_id = self.registry.create_run(exchange_type, filename, namespace)
        started = time.monotonic()

        try:
            fp = open(path, "rb")
        except OSError as e:
            self.registry.fail_run(run_id, str(e))
            raise ExchangeFileError(f"Failed to open file {filename}") from e

        try:
            with fp, exclusive_lock(fp, filename):
                timeout = self.settings.max_execution_time or None
                reconciler = await asyncio.wait_for(
                    self._import_locked(fp, filename, namespace, run_id),
                    timeout=timeout,
                )
        except asyncio.TimeoutError as e:
            message = f"Import of {filename} exceeded {self.settings.max_execution_time}s"
            self.registry.fail_run(run_id, message)
            raise ExchangeError(message) from e
        except ExchangeError as e:
            self.registry.fail_run(run_id, e.message)
            raise
        except Exception as e:
            self.registry.fail_run(run_id, str(e))
            raise

        duration = time.monotonic() - started
        stats = reconciler.stats
        self.registry.complete_run(run_id, stats)
        logger.info(
            f"Импорт завершён: {exchange_type}/{filename} ({namespace}, "
            f"{'полная' if reconciler.run.is_full else 'изменения'}), "
            f"создано {stats['created']}, обновлено {stats['updated']}, "
            f"пропущено {stats['skipped']}, удалено {stats['deleted']}, "
            f"за {duration:.2f} с"
        )
        return "success"

    async def _import_locked(self, fp, filename: str, namespace: str, run_id: str) -> EntityReconciler:
        async with self.db.begin():
            header = sniff_header(fp)
            is_full = header.is_full
            if is_full is None:
                is_full = self.settings.assume_full_when_unknown
                logger.warning(
                    f"{filename}: признак СодержитТолькоИзменения не найден, "
                    f"выгрузка считается {'полной' if is_full else 'частичной'}"
                )

            run = ExchangeRun(namespace=namespace, is_full=is_full, is_vendor_variant=header.is_vendor_variant)
            logger.info(
                f"Начало импорта: file={filename}, namespace={namespace}, "
                f"is_full={is_full}, token={run.token}"
            )
            self.registry.start_run(run_id, is_full)

            context = ParseContext(filename, namespace, is_full, header.is_vendor_variant)
            store = EntityStore(self.db)
            reconciler = EntityReconciler(store, self.settings, run)
            handler = create_handler(namespace, context, reconciler, events=self.events)

            def report(ctx: ParseContext) -> None:
                self.registry.update_progress(run_id, ctx.elements_seen, f"Разбор {ctx.filename}")

            await XMLEventSource(handler, context, on_progress=report).run(fp)
            if not handler.completed:
                raise ExchangeXMLError(f"Root element is not closed in {filename}")

            await store.set_option(f"last_exchange_{namespace}", datetime.now(timezone.utc).isoformat())
            self.registry.update_progress(
                run_id,
                context.elements_seen,
                "Фиксация изменений",
                log=f"Пиковое число открытых записей: {context.peak_open_records}",
            )
        return reconciler
