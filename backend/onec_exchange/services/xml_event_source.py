"""
Потоковый разбор XML выгрузки 1С.

Файл читается порциями по 4 КБ и подаётся в expat; документ целиком в память
не загружается. События (открытие элемента, текст, закрытие) копятся за одну
порцию и затем по порядку передаются асинхронному обработчику пространства
имён, который может обращаться к базе.
"""
import logging
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Tuple
from xml.parsers import expat

from onec_exchange.exceptions import ExchangeXMLError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096
# Каждые N открытых элементов обработчик сбрасывает кэши
RELEASE_MEMORY_EVERY = 500

_START, _DATA, _END = "start", "data", "end"


class ParseContext:
    """
    Состояние разбора одного файла.

    stack содержит имена открытых элементов от корня до текущего,
    stack[depth] - текущий элемент; depth равен -1 до открытия корня и 0
    внутри корня.
    """

    def __init__(self, filename: str, namespace: str, is_full: bool, is_vendor_variant: bool = False):
        self.filename = filename
        self.namespace = namespace
        self.is_full = is_full
        self.is_vendor_variant = is_vendor_variant
        self.stack: List[str] = []
        self.depth = -1
        self.elements_seen = 0
        # Сколько записей (Товар, Предложение, ...) собирается прямо сейчас
        self.open_records = 0
        self.peak_open_records = 0

    def push(self, name: str) -> None:
        self.stack.append(name)
        self.depth += 1
        self.elements_seen += 1

    def pop(self) -> str:
        self.depth -= 1
        return self.stack.pop()

    @property
    def name(self) -> Optional[str]:
        return self.stack[-1] if self.stack else None

    @property
    def parent(self) -> Optional[str]:
        return self.stack[-2] if len(self.stack) > 1 else None

    @property
    def grandparent(self) -> Optional[str]:
        return self.stack[-3] if len(self.stack) > 2 else None

    @property
    def is_root(self) -> bool:
        return self.depth == 0

    def ancestor(self, level: int) -> Optional[str]:
        """ancestor(1) - родитель, ancestor(2) - родитель родителя и т.д."""
        index = len(self.stack) - 1 - level
        return self.stack[index] if index >= 0 else None

    def within(self, name: str) -> bool:
        """Текущий элемент вложен (на любой глубине) в элемент name"""
        return name in self.stack[:-1]

    def record_opened(self) -> None:
        self.open_records += 1
        if self.open_records > self.peak_open_records:
            self.peak_open_records = self.open_records

    def record_closed(self) -> None:
        if self.open_records > 0:
            self.open_records -= 1


class XMLEventSource:
    """Источник событий: expat + ParseContext + обработчик пространства имён"""

    def __init__(
        self,
        handler,
        context: ParseContext,
        chunk_size: int = CHUNK_SIZE,
        release_every: int = RELEASE_MEMORY_EVERY,
        on_progress: Optional[Callable[[ParseContext], None]] = None,
    ):
        self.handler = handler
        self.context = context
        self.chunk_size = chunk_size
        self.release_every = release_every
        self.on_progress = on_progress
        self._events: List[Tuple[str, Any, Optional[Dict[str, str]]]] = []

    def _create_parser(self):
        parser = expat.ParserCreate()
        parser.buffer_text = True
        parser.StartElementHandler = self._on_start
        parser.EndElementHandler = self._on_end
        parser.CharacterDataHandler = self._on_data
        return parser

    def _on_start(self, name: str, attrs: Dict[str, str]) -> None:
        self._events.append((_START, name, attrs))

    def _on_end(self, name: str) -> None:
        self._events.append((_END, name, None))

    def _on_data(self, data: str) -> None:
        self._events.append((_DATA, data, None))

    async def run(self, fp: BinaryIO) -> ParseContext:
        """Разбор файла до конца; возвращает итоговый контекст"""
        parser = self._create_parser()
        while True:
            chunk = fp.read(self.chunk_size)
            is_final = not chunk
            try:
                parser.Parse(chunk, is_final)
            except expat.ExpatError as e:
                # События до ошибки уже корректны, но прогон всё равно фатален
                self._events.clear()
                reason = expat.ErrorString(e.code)
                raise ExchangeXMLError(
                    f"{reason} in {self.context.filename} on line {e.lineno}"
                ) from e
            await self._drain()
            if is_final:
                break
        return self.context

    async def _drain(self) -> None:
        events, self._events = self._events, []
        ctx = self.context
        for kind, value, attrs in events:
            if kind == _START:
                ctx.push(value)
                await self.handler.on_start(value, attrs or {})
                if ctx.elements_seen % self.release_every == 0:
                    logger.debug(
                        f"{ctx.filename}: обработано {ctx.elements_seen} элементов, сброс кэшей"
                    )
                    await self.handler.release_memory()
                    if self.on_progress is not None:
                        self.on_progress(ctx)
            elif kind == _DATA:
                self.handler.on_character_data(value)
            else:
                await self.handler.on_end(value)
                ctx.pop()
