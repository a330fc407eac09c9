"""
Сборка вариативных товаров из записей с составным Ид "<товар>#<характеристика>".

1С выгружает характеристики одного товара подряд. Записи копятся в буфере,
пока Ид родителя не сменится (или не закончится коллекция), после чего
родитель становится вариативным, получает оси вариаций, а каждая запись
буфера - собственную вариацию.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from onec_exchange.exceptions import RecordSkipped
from onec_exchange.models.product import Product
from onec_exchange.services.entity_store import EntityKind
from onec_exchange.services.records import CharacteristicRecord, OfferRecord, ProductRecord

logger = logging.getLogger(__name__)


@dataclass
class SubEntity:
    """Товар или предложение, относящееся к характеристике родителя"""

    guid: str
    parent_guid: str
    characteristics: List[CharacteristicRecord] = field(default_factory=list)
    offer: Optional[OfferRecord] = None
    product: Optional[ProductRecord] = None

    @property
    def is_deleted(self) -> bool:
        return self.product is not None and self.product.is_deleted


def build_variation_axis(entries: List[SubEntity]) -> Dict[str, List[str]]:
    """Имя характеристики -> отсортированные различные значения; имена тоже по порядку"""
    axis: Dict[str, List[str]] = {}
    for entry in entries:
        if entry.is_deleted:
            continue
        for characteristic in entry.characteristics:
            values = axis.setdefault(characteristic.name, [])
            value = characteristic.value
            if value and value not in values:
                values.append(value)
    return {name: sorted(axis[name]) for name in sorted(axis)}


class VariantAggregator:
    """
    Буфер вариаций одного родителя.

    are_products=True для import.xml: родитель создаётся/обновляется из первой
    записи буфера. Для offers.xml родитель должен уже существовать.
    """

    def __init__(self, reconciler, are_products: bool = False, preserve_variations: bool = False):
        self.reconciler = reconciler
        self.are_products = are_products
        self.preserve_variations = preserve_variations
        self.buffer: List[SubEntity] = []
        self.groups_flushed = 0

    @property
    def current_parent(self) -> Optional[str]:
        return self.buffer[0].parent_guid if self.buffer else None

    async def offer(self, entry: SubEntity) -> None:
        # Сравниваем с родителем уже накопленного буфера, а не новой записи
        if self.buffer and self.current_parent != entry.parent_guid:
            await self.flush()
        self.buffer.append(entry)

    async def flush(self) -> None:
        if not self.buffer:
            return
        try:
            await self.apply(self.buffer)
        finally:
            self.groups_flushed += 1
            self.buffer = []

    async def apply(self, entries: List[SubEntity]) -> None:
        reconciler = self.reconciler
        parent_guid = entries[0].parent_guid
        axis = build_variation_axis(entries)

        if self.are_products:
            # Родитель берёт поля первой неудалённой характеристики
            source = next((entry for entry in entries if not entry.is_deleted), entries[0])
            parent_id = await reconciler.upsert_product(source.product, guid=parent_guid)
            if parent_id is None:
                return

        parent_id = await reconciler.guarded(
            EntityKind.PRODUCT, parent_guid, lambda: self._prepare_parent(parent_guid, axis)
        )
        if parent_id is None:
            return

        kept = set()
        for position, entry in enumerate(entries, start=1):
            if entry.is_deleted:
                # Помеченная на удаление вариация считается отсутствующей
                if self.preserve_variations:
                    await reconciler.upsert_product(entry.product)
                continue
            attributes = {name: "" for name in axis}
            for characteristic in entry.characteristics:
                if characteristic.value:
                    attributes[characteristic.name] = characteristic.value
            variation_id = await reconciler.guarded(
                EntityKind.PRODUCT,
                entry.guid,
                lambda: self._replace_variation(entry, parent_id, position, attributes),
            )
            if variation_id is not None:
                kept.add(variation_id)

        if not self.preserve_variations:
            await reconciler.guarded(
                EntityKind.PRODUCT, parent_guid, lambda: self._delete_other_variations(parent_id, kept)
            )
        logger.debug(f"Товар {parent_guid}: обработано вариаций {len(entries)}")

    async def _prepare_parent(self, parent_guid: str, axis: Dict[str, List[str]]):
        parent = await self.reconciler.get_product(parent_guid)
        if parent is None:
            raise RecordSkipped("родительский товар для вариаций не найден", parent_guid)
        await self.reconciler.set_variation_axis(parent, axis)
        return parent.id

    async def _replace_variation(self, entry: SubEntity, parent_id, position: int, attributes: Dict[str, str]):
        parent: Product = await self.reconciler.store.get(EntityKind.PRODUCT, parent_id)
        variation = await self.reconciler.upsert_variation(entry.guid, parent, position)
        if entry.product is not None and entry.product.sku:
            variation.sku = entry.product.sku
        await self.reconciler.apply_offer(variation, entry.offer, attributes)
        return variation.id

    async def _delete_other_variations(self, parent_id, kept):
        parent: Product = await self.reconciler.store.get(EntityKind.PRODUCT, parent_id)
        return await self.reconciler.delete_other_variations(parent, kept)
