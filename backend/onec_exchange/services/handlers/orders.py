"""
Разбор orders*.xml: документы "Заказ товара", изменённые на стороне 1С.
"""
import logging
from typing import Optional

from onec_exchange.services.handlers.base import ROOT_ELEMENT, NamespaceHandler
from onec_exchange.services.records import (
    CharacteristicRecord,
    CounterpartyRecord,
    OrderDocumentRecord,
    OrderLineRecord,
    RequisiteRecord,
)

logger = logging.getLogger(__name__)


class OrdersHandler(NamespaceHandler):
    namespace = "orders"

    START = {
        (ROOT_ELEMENT, "Документ"): "_start_document",
        ("Контейнер", "Документ"): "_start_document",
        ("Контрагенты", "Контрагент"): "_start_counterparty",
        ("Товары", "Товар"): "_start_line",
        ("ЗначенияРеквизитов", "ЗначениеРеквизита"): "_start_requisite",
        ("ХарактеристикиТовара", "ХарактеристикаТовара"): "_start_characteristic",
    }
    END = {
        (ROOT_ELEMENT, "Документ"): "_end_document",
        ("Контейнер", "Документ"): "_end_document",
    }

    def __init__(self, context, reconciler, **kwargs):
        super().__init__(context, reconciler, **kwargs)
        self._document: Optional[OrderDocumentRecord] = None

    async def _start_document(self, attrs):
        self._document = OrderDocumentRecord()
        self.ctx.record_opened()

    async def _start_counterparty(self, attrs):
        if self._document is not None:
            self._document.counterparties.append(CounterpartyRecord())

    async def _start_line(self, attrs):
        if self._document is not None and self.ctx.grandparent == "Документ":
            self._document.lines.append(OrderLineRecord())

    async def _start_requisite(self, attrs):
        document = self._document
        if document is None:
            return
        owner = self.ctx.ancestor(2)
        if owner == "Товар" and document.lines:
            document.lines[-1].requisites.append(RequisiteRecord())
        elif owner == "Документ":
            document.requisites.append(RequisiteRecord())

    async def _start_characteristic(self, attrs):
        document = self._document
        if document is not None and document.lines and self.ctx.ancestor(2) == "Товар":
            document.lines[-1].characteristics.append(CharacteristicRecord())

    async def _end_document(self, text):
        document, self._document = self._document, None
        if document is None:
            return
        self.ctx.record_closed()
        await self.reconciler.upsert_order(document)

    def on_field(self, name: str, text: str) -> None:
        document = self._document
        if document is None:
            return
        parent = self.ctx.parent
        if parent == "Документ":
            document.fields.append(name, text)
        elif parent == "Контрагент" and document.counterparties:
            document.counterparties[-1].fields.append(name, text)
        elif parent == "Товар" and self.ctx.grandparent == "Товары" and document.lines:
            document.lines[-1].fields.append(name, text)
        elif parent == "ЗначениеРеквизита":
            requisite = self._current_requisite()
            if requisite is None:
                return
            if name == "Значение":
                requisite.add_value(text)
            else:
                requisite.fields.append(name, text)
        elif parent == "ХарактеристикаТовара" and document.lines and document.lines[-1].characteristics:
            document.lines[-1].characteristics[-1].fields.append(name, text)

    def _current_requisite(self) -> Optional[RequisiteRecord]:
        document = self._document
        owner = self.ctx.ancestor(3)
        if owner == "Товар" and document.lines and document.lines[-1].requisites:
            return document.lines[-1].requisites[-1]
        if owner == "Документ" and document.requisites:
            return document.requisites[-1]
        return None
