"""
Разбор offers*.xml: типы цен, цены и остатки предложений.
"""
import logging
from enum import Enum
from typing import List, Optional

from onec_exchange.exceptions import ExchangeConfigError
from onec_exchange.services.handlers.base import NamespaceHandler
from onec_exchange.services.normalize import is_variant_id, parse_decimal, split_variant_id
from onec_exchange.services.records import CharacteristicRecord, OfferRecord, PriceEntry, PriceType
from onec_exchange.services.variant_aggregator import SubEntity, VariantAggregator

logger = logging.getLogger(__name__)


class OffersState(str, Enum):
    IDLE = "idle"
    PRICE_TYPES = "price_types"
    OFFERS = "offers"


class OffersHandler(NamespaceHandler):
    namespace = "offers"

    START = {
        ("ПакетПредложений", "ТипыЦен"): "_start_price_types",
        ("ТипыЦен", "ТипЦены"): "_start_price_type",
        ("ПакетПредложений", "Предложения"): "_start_offers",
        ("ИзмененияПакетаПредложений", "Предложения"): "_start_offers",
        ("Предложения", "Предложение"): "_start_offer",
        ("Предложение", "Склад"): "_start_warehouse",
        ("ХарактеристикиТовара", "ХарактеристикаТовара"): "_start_characteristic",
        ("Цены", "Цена"): "_start_price",
    }
    END = {
        ("ПакетПредложений", "ТипыЦен"): "_end_price_types",
        ("Цены", "Цена"): "_end_price",
        ("Предложения", "Предложение"): "_end_offer",
        ("ПакетПредложений", "Предложения"): "_end_offers",
        ("ИзмененияПакетаПредложений", "Предложения"): "_end_offers",
    }

    def __init__(self, context, reconciler, **kwargs):
        super().__init__(context, reconciler, **kwargs)
        self.state = OffersState.IDLE
        self._price_types: List[PriceType] = []
        self.price_type: Optional[PriceType] = None
        self._selected_type_id: Optional[str] = None
        self._offer: Optional[OfferRecord] = None
        self._price: Optional[PriceEntry] = None
        self.aggregator = VariantAggregator(
            reconciler,
            are_products=False,
            preserve_variations=self.settings.preserve_product_variations,
        )

    # Типы цен ----------------------------------------------------------

    async def _start_price_types(self, attrs):
        self.state = OffersState.PRICE_TYPES
        self._price_types = []

    async def _start_price_type(self, attrs):
        self._price_types.append(PriceType())

    async def _end_price_types(self, text):
        self.price_type = self.select_price_type(self._price_types)
        if self.price_type is not None:
            self._selected_type_id = self.price_type.id
            logger.info(f"Тип цен для импорта: {self.price_type.name or self.price_type.id}")
            if self.settings.price_type:
                await self.reconciler.remember_price_type(self.settings.price_type, self.price_type.id)
            await self.reconciler.update_currency(self.price_type.currency or self.settings.currency)
        self.state = OffersState.IDLE

    def select_price_type(self, price_types: List[PriceType]) -> Optional[PriceType]:
        """
        Настроенный тип цен (по Ид или наименованию); без настройки -
        первый объявленный в файле.
        """
        preference = self.settings.price_type
        if not preference:
            return price_types[0] if price_types else None
        for price_type in price_types:
            if price_type.matches(preference):
                return price_type
        raise ExchangeConfigError(f"Failed to match price type: {preference}")

    async def selected_type_id(self) -> Optional[str]:
        """
        Ид типа цен, который даёт основную цену. В файлах изменений раздела
        ТипыЦен обычно нет: тогда берётся Ид, найденный для настройки в прошлых
        обменах, либо сама настройка. None - настройки нет и выбора не было.
        """
        if self._selected_type_id is None and self.settings.price_type:
            self._selected_type_id = await self.reconciler.recall_price_type(self.settings.price_type)
        return self._selected_type_id

    # Предложения -------------------------------------------------------

    async def _start_offers(self, attrs):
        self.state = OffersState.OFFERS

    async def _start_offer(self, attrs):
        self._offer = OfferRecord()
        self.ctx.record_opened()

    async def _start_warehouse(self, attrs):
        if self._offer is not None and "КоличествоНаСкладе" in attrs:
            self._offer.add_warehouse_quantity(parse_decimal(attrs["КоличествоНаСкладе"]))

    async def _start_characteristic(self, attrs):
        if self._offer is not None:
            self._offer.characteristics.append(CharacteristicRecord())

    async def _start_price(self, attrs):
        self._price = PriceEntry()

    async def _end_price(self, text):
        price, self._price = self._price, None
        if price is None or self._offer is None:
            return
        selected_id = await self.selected_type_id()
        type_id = price.type_id
        if self._offer.price is None and (type_id is None or selected_id is None or type_id == selected_id):
            self._offer.price = price
        else:
            self._offer.extra_prices[type_id or "default"] = price

    async def _end_offer(self, text):
        offer, self._offer = self._offer, None
        if offer is None:
            return
        self.ctx.record_closed()

        guid = offer.id
        if not guid:
            logger.warning("Предложение без Ид пропущено")
            return
        if not is_variant_id(guid) or self.settings.disable_variations:
            await self.reconciler.upsert_offer(offer)
            return

        parent_guid, _ = split_variant_id(guid)
        await self.aggregator.offer(SubEntity(
            guid=guid,
            parent_guid=parent_guid,
            characteristics=offer.characteristics,
            offer=offer,
        ))

    async def _end_offers(self, text):
        await self.aggregator.flush()
        self.state = OffersState.IDLE

    # Поля --------------------------------------------------------------

    def on_field(self, name: str, text: str) -> None:
        parent = self.ctx.parent
        if self.state is OffersState.PRICE_TYPES:
            if parent == "ТипЦены" and self._price_types:
                self._price_types[-1].fields.append(name, text)
            return
        offer = self._offer
        if offer is None:
            return
        if parent == "Предложение":
            offer.fields.append(name, text)
        elif parent == "Цена" and self._price is not None:
            self._price.fields.append(name, text)
        elif parent == "ХарактеристикаТовара" and offer.characteristics:
            offer.characteristics[-1].fields.append(name, text)
        elif name == "Количество" and self.ctx.within("Остатки"):
            # Остатки/Остаток/Количество или Остатки/Остаток/Склад/Количество
            offer.add_warehouse_quantity(parse_decimal(text))
