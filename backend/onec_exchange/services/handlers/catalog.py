"""
Разбор import*.xml: Классификатор (группы, свойства) и Каталог (товары).
"""
import logging
from enum import Enum
from typing import Dict, List, Optional

from onec_exchange.services.handlers.base import NamespaceHandler
from onec_exchange.services.normalize import is_variant_id, split_variant_id
from onec_exchange.services.records import (
    CharacteristicRecord,
    GroupRecord,
    ProductRecord,
    PropertyOptionRecord,
    PropertyRecord,
    PropertyValueRecord,
    RequisiteRecord,
)
from onec_exchange.services.variant_aggregator import SubEntity, VariantAggregator

logger = logging.getLogger(__name__)


class CatalogState(str, Enum):
    IDLE = "idle"
    GROUPS = "groups"
    PROPERTIES = "properties"
    PRODUCTS = "products"


class CatalogHandler(NamespaceHandler):
    namespace = "import"

    START = {
        ("Классификатор", "Группы"): "_start_groups",
        ("Группы", "Группа"): "_start_group",
        ("Группа", "Группы"): "_start_nested_groups",
        ("Классификатор", "Свойства"): "_start_properties",
        ("Свойства", "Свойство"): "_start_property",
        ("ВариантыЗначений", "Справочник"): "_start_property_option",
        ("Каталог", "Товары"): "_start_products",
        ("Товары", "Товар"): "_start_product",
        ("ХарактеристикиТовара", "ХарактеристикаТовара"): "_start_characteristic",
        ("ЗначенияСвойств", "ЗначенияСвойства"): "_start_property_value",
        ("ЗначенияРеквизитов", "ЗначениеРеквизита"): "_start_requisite",
    }
    END = {
        ("Группы", "Группа"): "_end_group",
        ("Классификатор", "Группы"): "_end_groups",
        ("Свойства", "Свойство"): "_end_property",
        ("Классификатор", "Свойства"): "_end_properties",
        ("Товары", "Товар"): "_end_product",
        ("Каталог", "Товары"): "_end_products",
    }

    def __init__(self, context, reconciler, **kwargs):
        super().__init__(context, reconciler, **kwargs)
        self.state = CatalogState.IDLE
        self._groups: List[GroupRecord] = []
        self._group_order = 1
        self._property: Optional[PropertyRecord] = None
        self._property_order = 1
        # Свойства, которые не стали атрибутами: Ид -> Наименование
        self._requisite_properties: Dict[str, str] = {}
        self._product: Optional[ProductRecord] = None
        self.aggregator = VariantAggregator(
            reconciler,
            are_products=True,
            preserve_variations=self.settings.preserve_product_variations,
        )

    # Группы ------------------------------------------------------------

    async def _start_groups(self, attrs):
        self.state = CatalogState.GROUPS
        self._groups = []
        self._group_order = 1

    async def _start_group(self, attrs):
        if self.state is not CatalogState.GROUPS:
            return
        parent_id = self._groups[-1].id if self._groups else ""
        self._groups.append(GroupRecord(parent_id=parent_id))
        self.ctx.record_opened()

    async def _start_nested_groups(self, attrs):
        # Родитель пишется до вложенных групп, чтобы они могли на него сослаться
        if not self._groups:
            return
        group = self._groups[-1]
        await self._commit_group(group)
        group.has_children = True

    async def _end_group(self, text):
        if self.state is not CatalogState.GROUPS or not self._groups:
            return
        group = self._groups.pop()
        if not group.has_children:
            await self._commit_group(group)
        self.ctx.record_closed()

    async def _commit_group(self, group: GroupRecord):
        if await self.reconciler.upsert_group(group, self._group_order):
            self._group_order += 1

    async def _end_groups(self, text):
        await self.reconciler.cleanup_groups()
        self.state = CatalogState.IDLE

    # Свойства ----------------------------------------------------------

    async def _start_properties(self, attrs):
        self.state = CatalogState.PROPERTIES
        self._property_order = 1
        self._requisite_properties = {}

    async def _start_property(self, attrs):
        self._property = PropertyRecord()
        self.ctx.record_opened()

    async def _start_property_option(self, attrs):
        if self._property is not None:
            self._property.options.append(PropertyOptionRecord())

    async def _end_property(self, text):
        prop, self._property = self._property, None
        self.ctx.record_closed()
        if prop is None:
            return
        attribute_id = await self.reconciler.upsert_property(prop, self._property_order)
        if attribute_id:
            self._property_order += 1
            await self.reconciler.cleanup_attribute_options(attribute_id)
        elif prop.id:
            self._requisite_properties[prop.id] = prop.name

    async def _end_properties(self, text):
        await self.reconciler.cleanup_attributes()
        self.state = CatalogState.IDLE

    # Товары ------------------------------------------------------------

    async def _start_products(self, attrs):
        self.state = CatalogState.PRODUCTS

    async def _start_product(self, attrs):
        if self.state is not CatalogState.PRODUCTS:
            return
        self._product = ProductRecord(status=attrs.get("Статус", ""))
        self.ctx.record_opened()

    async def _start_characteristic(self, attrs):
        if self._product is not None:
            self._product.characteristics.append(CharacteristicRecord())

    async def _start_property_value(self, attrs):
        if self._product is not None:
            self._product.property_values.append(PropertyValueRecord())

    async def _start_requisite(self, attrs):
        if self._product is not None:
            self._product.requisites.append(RequisiteRecord())

    async def _end_product(self, text):
        product, self._product = self._product, None
        if product is None:
            return
        self.ctx.record_closed()
        self._append_requisite_properties(product)

        guid = product.id
        if not guid:
            logger.warning("Товар без Ид пропущен")
            return
        if not is_variant_id(guid) or self.settings.disable_variations:
            await self.reconciler.upsert_product(product)
            return

        parent_guid, _ = split_variant_id(guid)
        await self.aggregator.offer(SubEntity(
            guid=guid,
            parent_guid=parent_guid,
            characteristics=product.characteristics,
            product=product,
        ))

    def _append_requisite_properties(self, product: ProductRecord):
        """Значения свойств-реквизитов переходят в ЗначенияРеквизитов товара"""
        if not self._requisite_properties:
            return
        for property_value in product.property_values:
            name = self._requisite_properties.get(property_value.id)
            if name is None:
                continue
            requisite = RequisiteRecord(values=list(property_value.values))
            requisite.fields.append("Наименование", name)
            product.requisites.append(requisite)

    async def _end_products(self, text):
        await self.aggregator.flush()
        await self.reconciler.cleanup_products()
        self.state = CatalogState.IDLE

    # Поля --------------------------------------------------------------

    def on_field(self, name: str, text: str) -> None:
        parent = self.ctx.parent
        if self.state is CatalogState.GROUPS:
            if parent == "Группа" and self._groups:
                self._groups[-1].fields.append(name, text)
        elif self.state is CatalogState.PROPERTIES:
            if self._property is None:
                return
            if parent == "Свойство":
                self._property.fields.append(name, text)
            elif parent == "Справочник" and self._property.options:
                self._property.options[-1].fields.append(name, text)
        elif self.state is CatalogState.PRODUCTS and self._product is not None:
            self._product_field(parent, name, text)

    def _product_field(self, parent: str, name: str, text: str) -> None:
        product = self._product
        if parent == "Товар":
            if name == "Картинка":
                product.images.append(text)
            else:
                product.fields.append(name, text)
        elif parent == "Группы" and name == "Ид":
            product.group_ids.append(text)
        elif parent == "Изготовитель":
            product.manufacturer.append(name, text)
        elif parent == "Пересчет":
            product.unit_conversion.append(name, text)
        elif parent == "ХарактеристикаТовара" and product.characteristics:
            product.characteristics[-1].fields.append(name, text)
        elif parent == "ЗначенияСвойства" and product.property_values:
            if name == "Значение":
                product.property_values[-1].values.append(text)
            else:
                product.property_values[-1].fields.append(name, text)
        elif parent == "ЗначениеРеквизита" and product.requisites:
            if name == "Значение":
                product.requisites[-1].add_value(text)
            else:
                product.requisites[-1].fields.append(name, text)
