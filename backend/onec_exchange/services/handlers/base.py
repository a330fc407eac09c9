"""
Базовый обработчик пространства имён (import / offers / orders).

Переходы задаются таблицами START/END с ключом (родитель, элемент);
значение - имя метода обработчика. Текст листовых элементов, для которых
нет перехода, передаётся в on_field. Текст элементов с дочерними
элементами (контейнеров) не считается значением поля.
"""
import gc
import logging
from typing import Dict, List, Tuple

from onec_exchange.exceptions import ExchangeXMLError
from onec_exchange.services.exchange_events import exchange_events
from onec_exchange.services.xml_event_source import ParseContext

logger = logging.getLogger(__name__)

ROOT_ELEMENT = "КоммерческаяИнформация"


class NamespaceHandler:
    namespace = ""

    START: Dict[Tuple[str, str], str] = {}
    END: Dict[Tuple[str, str], str] = {}

    def __init__(self, context: ParseContext, reconciler, events=exchange_events):
        self.ctx = context
        self.reconciler = reconciler
        self.settings = reconciler.settings
        self.events = events
        self._text: List[str] = []
        self._has_children: List[bool] = []
        self.completed = False

    async def on_start(self, name: str, attrs: Dict[str, str]) -> None:
        self._text = []
        if self._has_children:
            self._has_children[-1] = True
        self._has_children.append(False)

        if self.ctx.is_root and name != ROOT_ELEMENT:
            raise ExchangeXMLError(f"XML parser misbehavior: unexpected root element <{name}>")

        method = self.START.get((self.ctx.parent, name))
        if method:
            await getattr(self, method)(attrs)

    def on_character_data(self, data: str) -> None:
        self._text.append(data)

    async def on_end(self, name: str) -> None:
        text = "".join(self._text)
        self._text = []
        is_container = self._has_children.pop() if self._has_children else False

        if self.ctx.is_root:
            await self.finish()
            return
        method = self.END.get((self.ctx.parent, name))
        if method:
            await getattr(self, method)(text)
        elif not is_container:
            self.on_field(name, text)

    def on_field(self, name: str, text: str) -> None:
        """Значение листового элемента в текущую запись"""

    async def finish(self) -> None:
        self.completed = True
        await self.events.emit_run_completed(self.namespace, self.ctx.is_full)

    async def release_memory(self) -> None:
        await self.reconciler.store.release_memory()
        gc.collect()
