"""
Сверка записей выгрузки с базой магазина.

Каждая запись (группа, свойство, товар, предложение, документ) применяется
в собственной точке сохранения (SAVEPOINT): ошибка данных одной записи
откатывает только её, пишется предупреждение, и прогон продолжается. Ошибки
уровня соединения/транзакции пробрасываются и прерывают прогон целиком.

При полной выгрузке каждая записанная сущность помечается меткой прогона;
очистка удаляет (для товаров - переносит в корзину) сущности с другой меткой.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set
from uuid import UUID, uuid4

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError, DataError

from onec_exchange.config import ExchangeSettings
from onec_exchange.exceptions import RecordSkipped
from onec_exchange.models.catalog_section import CatalogSection
from onec_exchange.models.product import Product
from onec_exchange.models.product_attribute import ProductAttributeOption
from onec_exchange.models.product_catalog_section import ProductCatalogSection
from onec_exchange.models.order import OrderLine
from onec_exchange.services.entity_store import EntityKind, EntityStore
from onec_exchange.services.normalize import parse_decimal
from onec_exchange.services.records import (
    GroupRecord,
    OfferRecord,
    OrderDocumentRecord,
    ProductRecord,
    PropertyOptionRecord,
    PropertyRecord,
    RequisiteRecord,
)

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("pending", "processing", "on-hold", "completed", "cancelled", "refunded", "failed")

# Реквизиты, которые становятся полями товара и не хранятся в requisites
_DIMENSION_REQUISITES = {
    "Длина": "length",
    "Ширина": "width",
    "Высота": "height",
    "Вес": "weight",
}


def new_run_token() -> str:
    return f"{int(time.time())}-{uuid4().hex[:8]}"


@dataclass
class ExchangeRun:
    """Один прогон импорта файла"""

    namespace: str
    is_full: bool
    is_vendor_variant: bool = False
    token: str = field(default_factory=new_run_token)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite отдаёт naive datetime даже для timezone=True
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EntityReconciler:
    """Создание/обновление/удаление сущностей по записям выгрузки"""

    def __init__(self, store: EntityStore, settings: ExchangeSettings, run: ExchangeRun):
        self.store = store
        self.settings = settings
        self.run = run
        self.stats: Dict[str, int] = {"created": 0, "updated": 0, "skipped": 0, "deleted": 0}

    # ------------------------------------------------------------------
    # Граница одной записи

    async def guarded(self, kind: EntityKind, external_id: str, action: Callable[[], Awaitable[Any]]):
        """
        Выполняет action в SAVEPOINT. RecordSkipped и ошибки данных
        (IntegrityError, DataError) откатывают только эту запись.
        """
        try:
            async with self.store.db.begin_nested():
                return await action()
        except RecordSkipped as e:
            logger.warning(f"Пропущена запись {kind.value} {external_id or e.external_id or '<без Ид>'}: {e.message}")
        except (IntegrityError, DataError) as e:
            logger.warning(f"Ошибка данных при записи {kind.value} {external_id}, запись пропущена: {e.orig}")
        self.stats["skipped"] += 1
        self.store.clear_cache()
        return None

    async def _save(self, kind: EntityKind, entity, fields: Dict[str, Any]):
        """create или update с подсчётом статистики"""
        if entity is None:
            entity = await self.store.create(kind, fields)
            self.stats["created"] += 1
        else:
            entity = await self.store.update(kind, entity, fields)
            self.stats["updated"] += 1
        return entity

    @property
    def cleanup_enabled(self) -> bool:
        return self.run.is_full and not self.settings.prevent_clean

    # ------------------------------------------------------------------
    # Группы

    async def upsert_group(self, group: GroupRecord, order: int) -> Optional[UUID]:
        return await self.guarded(EntityKind.GROUP, group.id, lambda: self._replace_group(group, order))

    async def _replace_group(self, group: GroupRecord, order: int) -> UUID:
        guid = group.id
        if not guid:
            raise RecordSkipped("группа без Ид")
        name = group.name or guid

        local_id = await self.store.find_by_external_id(EntityKind.GROUP, guid)
        if local_id is None and self.settings.match_categories_by_title:
            local_id = await self.store.find_by_field(EntityKind.GROUP, "name", name)
            if local_id is not None:
                logger.info(f"Группа '{name}' сопоставлена по названию, Ид {guid}")
                self.store.rebind(EntityKind.GROUP, guid, local_id)
        entity = await self.store.get(EntityKind.GROUP, local_id) if local_id else None

        parent_id = None
        if group.parent_id:
            parent_id = await self.store.find_by_external_id(EntityKind.GROUP, group.parent_id)

        fields = {
            "external_id": guid,
            "name": name,
            "description": group.description or None,
            "parent_id": parent_id,
            "parent_external_id": group.parent_id or None,
            "exchange_timestamp": self.run.token,
        }
        # Порядок сортировки задаёт только полная выгрузка
        if self.run.is_full or entity is None:
            fields["sort_order"] = order
        entity = await self._save(EntityKind.GROUP, entity, fields)
        return entity.id

    async def cleanup_groups(self) -> int:
        """
        Удаляет группы прошлых прогонов, начиная с самых глубоких.
        Дочерние группы переносятся к родителю удалённой.
        """
        if not self.cleanup_enabled:
            return 0
        stale_ids = await self.store.list_stale_ids(EntityKind.GROUP, self.run.token)
        if not stale_ids:
            return 0

        rows = (await self.store.db.execute(select(CatalogSection.id, CatalogSection.parent_id))).all()
        parents = {row.id: row.parent_id for row in rows}

        def depth(group_id: UUID) -> int:
            level, seen = 0, set()
            current = parents.get(group_id)
            while current is not None and current not in seen:
                seen.add(current)
                level += 1
                current = parents.get(current)
            return level

        for group_id in sorted(stale_ids, key=depth, reverse=True):
            new_parent = parents.get(group_id)
            await self.store.db.execute(
                update(CatalogSection)
                .where(CatalogSection.parent_id == group_id)
                .values(parent_id=new_parent)
                .execution_options(synchronize_session=False)
            )
            for child_id, parent_id in list(parents.items()):
                if parent_id == group_id:
                    parents[child_id] = new_parent
            await self.store.db.execute(
                delete(ProductCatalogSection).where(ProductCatalogSection.catalog_section_id == group_id)
            )
            await self.store.delete(EntityKind.GROUP, group_id)
            parents.pop(group_id, None)

        self.stats["deleted"] += len(stale_ids)
        logger.info(f"Удалено групп, отсутствующих в полной выгрузке: {len(stale_ids)}")
        return len(stale_ids)

    # ------------------------------------------------------------------
    # Свойства

    def is_requisite_property(self, prop: PropertyRecord) -> bool:
        configured = self.settings.requisite_properties
        return not prop.id or prop.id in configured or prop.name in configured

    async def upsert_property(self, prop: PropertyRecord, order: int) -> Optional[UUID]:
        """id свойства или None, если свойство хранится как реквизит"""
        if self.is_requisite_property(prop):
            return None
        return await self.guarded(EntityKind.ATTRIBUTE, prop.id, lambda: self._replace_property(prop, order))

    async def _replace_property(self, prop: PropertyRecord, order: int) -> UUID:
        preserve = set(self.settings.preserve_property_fields)
        attribute_type = prop.attribute_type(self.settings.multiple_values_delimiter)

        local_id = await self.store.find_by_external_id(EntityKind.ATTRIBUTE, prop.id)
        if local_id is None and self.settings.match_properties_by_title:
            local_id = await self.store.find_by_field(EntityKind.ATTRIBUTE, "name", prop.name)
            if local_id is not None:
                self.store.rebind(EntityKind.ATTRIBUTE, prop.id, local_id)
        entity = await self.store.get(EntityKind.ATTRIBUTE, local_id) if local_id else None

        fields: Dict[str, Any] = {
            "external_id": prop.id,
            "sort_order": order,
            "exchange_timestamp": self.run.token,
        }
        if entity is None or "label" not in preserve:
            fields["name"] = prop.name
        if entity is None or "type" not in preserve:
            fields["attribute_type"] = attribute_type
        entity = await self._save(EntityKind.ATTRIBUTE, entity, fields)

        if entity.attribute_type == "select":
            for position, option in enumerate(prop.options, start=1):
                await self._replace_property_option(entity.id, option, position)
        return entity.id

    async def _replace_property_option(self, attribute_id: UUID, option: PropertyOptionRecord, order: int) -> None:
        if not option.id or not option.value:
            logger.warning(
                f"Вариант значения свойства без ИдЗначения или Значения пропущен (свойство {attribute_id})"
            )
            self.stats["skipped"] += 1
            return

        local_id = await self.store.find_by_external_id(EntityKind.OPTION, option.id, scope=attribute_id)
        if local_id is None and self.settings.match_property_options_by_title:
            local_id = await self.store.find_by_field(
                EntityKind.OPTION, "value", option.value, attribute_id=attribute_id
            )
            if local_id is not None:
                self.store.rebind(EntityKind.OPTION, option.id, local_id, scope=attribute_id)
        entity = await self.store.get(EntityKind.OPTION, local_id) if local_id else None

        await self._save(EntityKind.OPTION, entity, {
            "attribute_id": attribute_id,
            "external_id": option.id,
            "value": option.value,
            "sort_order": order,
            "exchange_timestamp": self.run.token,
        })

    async def cleanup_attribute_options(self, attribute_id: UUID) -> int:
        if not self.cleanup_enabled:
            return 0
        stale_ids = await self.store.list_stale_ids(EntityKind.OPTION, self.run.token, attribute_id=attribute_id)
        for option_id in stale_ids:
            await self.store.delete(EntityKind.OPTION, option_id)
        self.stats["deleted"] += len(stale_ids)
        return len(stale_ids)

    async def cleanup_attributes(self) -> int:
        if not self.cleanup_enabled:
            return 0
        stale_ids = await self.store.list_stale_ids(EntityKind.ATTRIBUTE, self.run.token)
        for attribute_id in stale_ids:
            await self.store.db.execute(
                delete(ProductAttributeOption).where(ProductAttributeOption.attribute_id == attribute_id)
            )
            await self.store.delete(EntityKind.ATTRIBUTE, attribute_id)
        if stale_ids:
            self.stats["deleted"] += len(stale_ids)
            logger.info(f"Удалено свойств, отсутствующих в полной выгрузке: {len(stale_ids)}")
        return len(stale_ids)

    # ------------------------------------------------------------------
    # Товары (import.xml)

    async def upsert_product(self, record: ProductRecord, guid: Optional[str] = None) -> Optional[UUID]:
        guid = guid or record.id
        return await self.guarded(EntityKind.PRODUCT, guid, lambda: self._replace_product(guid, record))

    async def _replace_product(self, guid: str, record: ProductRecord) -> Optional[UUID]:
        if not guid:
            raise RecordSkipped("товар без Ид")

        if self.settings.match_by_sku and record.sku:
            if await self.store.find_by_external_id(EntityKind.PRODUCT, guid) is None:
                matched_id = await self.store.find_by_field(EntityKind.PRODUCT, "sku", record.sku, parent_id=None)
                if matched_id is not None:
                    logger.info(f"Товар с артикулом {record.sku} привязан к Ид {guid}")
                    await self.store.update(EntityKind.PRODUCT, matched_id, {"external_id": guid})
                    self.store.rebind(EntityKind.PRODUCT, guid, matched_id)

        entity = await self.store.get_by_external_id(EntityKind.PRODUCT, guid)

        if record.is_deleted:
            if entity is not None and entity.status != "trash":
                await self.store.update(EntityKind.PRODUCT, entity, {
                    "status": "trash",
                    "exchange_timestamp": self.run.token,
                })
                self.stats["deleted"] += 1
            return None

        if not record.name:
            raise RecordSkipped("товар без наименования", guid)

        preserve = set(self.settings.preserve_product_fields)
        fields: Dict[str, Any] = {
            "external_id": guid,
            "name": record.name,
            "status": "draft" if record.is_draft else "publish",
            "manage_stock": self.settings.manage_stock,
            "exchange_timestamp": self.run.token,
        }
        if record.sku:
            fields["sku"] = record.sku
        if record.barcode:
            fields["barcode"] = record.barcode
        manufacturer = record.manufacturer.get("Наименование")
        if manufacturer:
            fields["manufacturer"] = manufacturer

        content, requisites = self._split_requisites(record.requisites, fields)
        fields["requisites"] = requisites

        description = record.description
        if self.settings.product_description_to_content:
            fields["description"] = description or None
        else:
            fields["short_description"] = description or None
            if content:
                fields["description"] = content

        if "images" not in preserve and "attachments" not in preserve and record.image_paths():
            fields["images"] = record.image_paths()

        attributes = await self._product_attributes(record)
        if entity is not None:
            # Оси вариаций выставляет агрегатор вариантов, здесь их сохраняем
            attributes += [a for a in (entity.attributes or []) if a.get("variation")]
        fields["attributes"] = attributes

        if entity is not None:
            for name in preserve:
                fields.pop(name, None)
        else:
            fields["product_type"] = "simple"

        entity = await self._save(EntityKind.PRODUCT, entity, fields)

        if "categories" not in preserve:
            await self._replace_categories(entity.id, record.category_ids())

        if not entity.stock_quantity:
            entity.stock_status = self.settings.outofstock_status
            await self.store.db.flush()
        return entity.id

    def _split_requisites(self, requisites: Iterable[RequisiteRecord], fields: Dict[str, Any]):
        """
        Полное наименование, описание HTML и габариты переходят в поля товара;
        остальные реквизиты возвращаются словарём {Наименование: [значения]}.
        """
        content = None
        remaining: Dict[str, List[str]] = {}
        for requisite in requisites:
            value = requisite.value
            name = requisite.name
            if not value:
                continue
            if name == "Полное наименование":
                # МойСклад кладёт сюда описание
                if self.run.is_vendor_variant:
                    content = value
                else:
                    fields["name"] = value
            elif name == "ОписаниеВФорматеHTML":
                content = value
            elif name in _DIMENSION_REQUISITES:
                fields[_DIMENSION_REQUISITES[name]] = parse_decimal(value)
            else:
                values = [v.strip() for v in requisite.values if v.strip()] or [value]
                remaining.setdefault(name, []).extend(values)
        return content, remaining

    async def _product_attributes(self, record: ProductRecord) -> List[Dict[str, Any]]:
        delimiter = self.settings.multiple_values_delimiter
        attributes = []
        for property_value in record.property_values:
            values = property_value.non_empty_values()
            if not values:
                continue
            attribute = await self.store.get_by_external_id(EntityKind.ATTRIBUTE, property_value.id)
            if attribute is None:
                continue

            options: List[str] = []
            for value in values:
                option = None
                if attribute.attribute_type == "select":
                    option = await self.store.get_by_external_id(EntityKind.OPTION, value, scope=attribute.id)
                if option is not None:
                    options.append(option.value)
                elif delimiter:
                    options.extend(part.strip() for part in value.split(delimiter) if part.strip())
                else:
                    options.append(value)
            if options:
                attributes.append({
                    "name": attribute.name,
                    "external_id": attribute.external_id,
                    "options": options,
                    "variation": False,
                })
        return attributes

    async def _replace_categories(self, product_id: UUID, group_ids: List[str]) -> None:
        section_ids = []
        for group_id in group_ids:
            section_id = await self.store.find_by_external_id(EntityKind.GROUP, group_id)
            if section_id is not None and section_id not in section_ids:
                section_ids.append(section_id)
        if not section_ids:
            return
        await self.store.db.execute(
            delete(ProductCatalogSection).where(ProductCatalogSection.product_id == product_id)
        )
        for section_id in section_ids:
            self.store.db.add(ProductCatalogSection(product_id=product_id, catalog_section_id=section_id))
        await self.store.db.flush()

    async def cleanup_products(self) -> int:
        """Переносит в корзину товары прошлых прогонов (вариации не трогаются)"""
        if not self.cleanup_enabled:
            return 0
        stale_ids = await self.store.list_stale_ids(EntityKind.PRODUCT, self.run.token, parent_id=None)
        trashed = 0
        for product_id in stale_ids:
            product = await self.store.get(EntityKind.PRODUCT, product_id)
            if product is None or product.status == "trash":
                continue
            product.status = "trash"
            trashed += 1
        await self.store.db.flush()
        self.stats["deleted"] += trashed
        if trashed:
            logger.info(f"В корзину перенесено товаров, отсутствующих в полной выгрузке: {trashed}")
        return trashed

    # ------------------------------------------------------------------
    # Предложения (offers.xml)

    async def update_currency(self, currency: str) -> None:
        if not currency:
            return
        await self.store.set_option("currency", currency)
        logger.info(f"Валюта магазина обновлена: {currency}")

    async def remember_price_type(self, preference: str, type_id: str) -> None:
        """Запоминает Ид типа цен, найденный для настройки"""
        await self.store.set_option("price_type", preference)
        await self.store.set_option("price_type_id", type_id)

    async def recall_price_type(self, preference: str) -> str:
        if await self.store.get_option("price_type") == preference:
            type_id = await self.store.get_option("price_type_id")
            if type_id:
                return type_id
        return preference

    async def upsert_offer(self, offer: OfferRecord) -> Optional[UUID]:
        return await self.guarded(EntityKind.PRODUCT, offer.id, lambda: self._replace_offer(offer))

    async def _replace_offer(self, offer: OfferRecord) -> UUID:
        product = await self.store.get_by_external_id(EntityKind.PRODUCT, offer.id)
        if product is None:
            raise RecordSkipped("товар для предложения не найден", offer.id)
        await self.apply_offer(product, offer)
        self.stats["updated"] += 1
        return product.id

    async def apply_offer(
        self,
        product: Product,
        offer: Optional[OfferRecord],
        variation_attributes: Optional[Dict[str, str]] = None,
    ) -> None:
        """Цена, остаток и атрибуты вариации из предложения"""
        if offer is not None and offer.price is not None:
            price = offer.price.unit_price()
            if price is not None:
                product.regular_price = price
                product.manage_stock = self.settings.manage_stock
                product.price = self._active_price(product, price)

        if offer is not None:
            quantity = offer.quantity
            if quantity is not None:
                product.stock_quantity = quantity
                product.stock_status = "instock" if quantity > 0 else self.settings.outofstock_status

            if offer.extra_prices:
                prices = dict(product.prices or {})
                for type_id, entry in offer.extra_prices.items():
                    prices[type_id] = entry.as_dict()
                product.prices = prices

        if variation_attributes is not None and product.product_type == "variation":
            product.variation_attributes = dict(variation_attributes)

        if not product.stock_quantity:
            product.stock_status = self.settings.outofstock_status
        await self.store.db.flush()

    @staticmethod
    def _active_price(product: Product, regular_price: float) -> float:
        """Цена со скидкой, если акция действует; истёкшая акция сбрасывается"""
        if not product.sale_price:
            return regular_price
        now = datetime.now(timezone.utc)
        sale_from = _as_utc(product.date_on_sale_from)
        sale_to = _as_utc(product.date_on_sale_to)
        sale_active = True
        if sale_from and sale_from > now:
            sale_active = False
        if sale_to and sale_to < now:
            sale_active = False
            product.sale_price = None
            product.date_on_sale_from = None
            product.date_on_sale_to = None
        return product.sale_price if sale_active else regular_price

    # ------------------------------------------------------------------
    # Вариации (общие для import.xml и offers.xml)

    async def get_product(self, guid: str) -> Optional[Product]:
        return await self.store.get_by_external_id(EntityKind.PRODUCT, guid)

    async def set_variation_axis(self, parent: Product, axis: Dict[str, List[str]]) -> None:
        """Делает товар вариативным и записывает оси вариаций"""
        fields: Dict[str, Any] = {}
        if parent.product_type != "variable":
            fields["product_type"] = "variable"
        if axis:
            attributes = [a for a in (parent.attributes or []) if not a.get("variation")]
            for name, values in axis.items():
                attributes.append({"name": name, "options": list(values), "variation": True})
            fields["attributes"] = attributes
        if fields:
            await self.store.update(EntityKind.PRODUCT, parent, fields)

    async def upsert_variation(self, guid: str, parent: Product, order: int) -> Product:
        variation = await self.store.get_by_external_id(EntityKind.PRODUCT, guid)
        fields = {
            "parent_id": parent.id,
            "product_type": "variation",
            "menu_order": order,
            "exchange_timestamp": self.run.token,
        }
        if variation is None:
            fields.update({
                "external_id": guid,
                "name": parent.name,
                "status": "publish",
                "manage_stock": self.settings.manage_stock,
            })
        elif variation.status == "trash":
            fields["status"] = "publish"
        return await self._save(EntityKind.PRODUCT, variation, fields)

    async def delete_other_variations(self, parent: Product, keep_ids: Set[UUID]) -> int:
        rows = await self.store.db.execute(select(Product.id).where(Product.parent_id == parent.id))
        stale = [product_id for product_id in rows.scalars().all() if product_id not in keep_ids]
        for product_id in stale:
            await self.store.db.execute(
                update(OrderLine)
                .where(OrderLine.product_id == product_id)
                .values(product_id=None)
                .execution_options(synchronize_session=False)
            )
            await self.store.delete(EntityKind.PRODUCT, product_id)
        if stale:
            self.stats["deleted"] += len(stale)
            logger.info(f"Удалено вариаций товара {parent.external_id}, отсутствующих в выгрузке: {len(stale)}")
        return len(stale)

    # ------------------------------------------------------------------
    # Заказы (orders.xml)

    async def upsert_order(self, document: OrderDocumentRecord) -> Optional[UUID]:
        if not document.is_sale_order:
            logger.debug(f"Документ {document.number or document.id} не является заказом покупателя, пропущен")
            return None
        return await self.guarded(EntityKind.ORDER, document.number, lambda: self._replace_order(document))

    async def _replace_order(self, document: OrderDocumentRecord) -> UUID:
        if not document.number:
            raise RecordSkipped("документ без номера", document.id)

        order = await self.store.get_by_external_id(EntityKind.ORDER, document.number)
        fields: Dict[str, Any] = {}
        if order is None:
            contragent = document.contragent_name
            fields.update({
                "number": document.number,
                "status": "on-hold",
                "customer_note": document.comment or None,
                "contragent": contragent if contragent and not document.counterparties[0].is_guest else None,
                "order_date": document.order_date(),
                "external_id": document.id or None,
            })
        else:
            status = document.requisite_value("Статуса заказа ИД")
            if status in ORDER_STATUSES:
                fields["status"] = status
            if document.has_requisite("Отменен", "true"):
                fields["status"] = "cancelled"

        fields["is_deleted"] = document.is_marked_for_deletion
        fields["counterparties"] = [c.as_dict() for c in document.counterparties]
        fields["requisites"] = {r.name: r.value for r in document.requisites if r.name}
        payment_method = document.requisite_value("Метод оплаты")
        if payment_method:
            fields["payment_method"] = payment_method
        currency = document.currency or self.settings.currency
        if currency:
            fields["currency"] = currency

        order = await self._save(EntityKind.ORDER, order, fields)
        await self._replace_order_lines(order, document)
        return order.id

    async def _replace_order_lines(self, order, document: OrderDocumentRecord) -> None:
        await self.store.db.execute(delete(OrderLine).where(OrderLine.order_id == order.id))

        lines_total = 0.0
        shipping_total = 0.0
        for line in document.lines:
            variation = {c.name: c.value for c in line.characteristics if c.name}
            if line.is_service:
                shipping_total += line.total
                self.store.db.add(OrderLine(
                    order_id=order.id,
                    line_type="shipping",
                    product_external_id=line.id or None,
                    name=line.name or "Доставка",
                    quantity=line.quantity or 1,
                    price=line.price,
                    subtotal=line.total,
                    total=line.total,
                ))
                continue

            product_id = await self.store.find_by_external_id(EntityKind.PRODUCT, line.id)
            if product_id is None:
                logger.warning(f"Заказ {order.number}: товар {line.id} ({line.name}) не найден, строка пропущена")
                continue
            lines_total += line.total
            self.store.db.add(OrderLine(
                order_id=order.id,
                line_type="line_item",
                product_id=product_id,
                product_external_id=line.id,
                name=line.name or line.id,
                quantity=line.quantity,
                price=line.price,
                subtotal=line.price * line.quantity,
                total=line.total,
                variation=variation or None,
            ))

        order.shipping_total = shipping_total
        declared_total = document.total
        order.total = declared_total if declared_total is not None else lines_total + shipping_total
        await self.store.db.flush()
