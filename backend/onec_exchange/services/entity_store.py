"""
Хранилище сущностей обмена поверх AsyncSession.

Все операции выполняются в транзакции, открытой для прогона; commit/rollback
здесь не вызываются. Соответствие Ид 1С -> локальный id кэшируется на время
прогона и сбрасывается вместе с identity map при release_memory.
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from onec_exchange.models.catalog_section import CatalogSection
from onec_exchange.models.product_attribute import ProductAttribute, ProductAttributeOption
from onec_exchange.models.product import Product
from onec_exchange.models.order import Order
from onec_exchange.models.exchange_option import ExchangeOption

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    GROUP = "group"
    ATTRIBUTE = "attribute"
    OPTION = "option"
    PRODUCT = "product"
    ORDER = "order"


_MODELS = {
    EntityKind.GROUP: CatalogSection,
    EntityKind.ATTRIBUTE: ProductAttribute,
    EntityKind.OPTION: ProductAttributeOption,
    EntityKind.PRODUCT: Product,
    EntityKind.ORDER: Order,
}

# У заказов ключ - номер документа, у остальных - Ид из 1С
_KEY_COLUMNS = {
    EntityKind.ORDER: "number",
}


class EntityStore:
    """Поиск, создание, обновление и удаление сущностей по внешним Ид"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._ids: Dict[Tuple[EntityKind, Any, str], UUID] = {}

    @staticmethod
    def model(kind: EntityKind):
        return _MODELS[kind]

    def _key_column(self, kind: EntityKind):
        return getattr(self.model(kind), _KEY_COLUMNS.get(kind, "external_id"))

    async def find_by_external_id(
        self, kind: EntityKind, external_id: str, scope: Optional[UUID] = None
    ) -> Optional[UUID]:
        """
        Локальный id по Ид из 1С. Для вариантов значений свойства scope -
        id свойства, Ид варианта уникален только внутри него.
        """
        if not external_id:
            return None
        cache_key = (kind, scope, external_id)
        if cache_key in self._ids:
            return self._ids[cache_key]

        model = self.model(kind)
        query = select(model.id).where(self._key_column(kind) == external_id)
        if kind == EntityKind.OPTION:
            query = query.where(ProductAttributeOption.attribute_id == scope)
        local_id = (await self.db.execute(query.limit(1))).scalar_one_or_none()
        if local_id is not None:
            self._ids[cache_key] = local_id
        return local_id

    async def find_by_field(
        self, kind: EntityKind, field_name: str, value: Any, **filters: Any
    ) -> Optional[UUID]:
        """Первый id с field_name == value (сопоставление по названию, артикулу)"""
        if value in (None, ""):
            return None
        model = self.model(kind)
        query = select(model.id).where(getattr(model, field_name) == value)
        for name, filter_value in filters.items():
            query = query.where(getattr(model, name) == filter_value)
        return (await self.db.execute(query.limit(1))).scalars().first()

    async def get(self, kind: EntityKind, local_id: UUID):
        return await self.db.get(self.model(kind), local_id)

    async def get_by_external_id(self, kind: EntityKind, external_id: str, scope: Optional[UUID] = None):
        local_id = await self.find_by_external_id(kind, external_id, scope)
        if local_id is None:
            return None
        return await self.get(kind, local_id)

    async def create(self, kind: EntityKind, fields: Dict[str, Any]):
        entity = self.model(kind)(**fields)
        self.db.add(entity)
        await self.db.flush()
        external_id = getattr(entity, _KEY_COLUMNS.get(kind, "external_id"))
        scope = fields.get("attribute_id") if kind == EntityKind.OPTION else None
        if external_id:
            self._ids[(kind, scope, external_id)] = entity.id
        return entity

    async def update(self, kind: EntityKind, entity, fields: Dict[str, Any]):
        if not isinstance(entity, self.model(kind)):
            entity = await self.get(kind, entity)
        for name, value in fields.items():
            setattr(entity, name, value)
        await self.db.flush()
        return entity

    def rebind(self, kind: EntityKind, external_id: str, local_id: UUID, scope: Optional[UUID] = None) -> None:
        """Запоминает новое соответствие Ид -> id (после сопоставления по названию/артикулу)"""
        self._ids[(kind, scope, external_id)] = local_id

    async def delete(self, kind: EntityKind, local_id: UUID) -> None:
        model = self.model(kind)
        await self.db.execute(delete(model).where(model.id == local_id))
        self._ids = {key: value for key, value in self._ids.items() if value != local_id}

    async def list_stale_ids(self, kind: EntityKind, run_token: str, **filters: Any) -> List[UUID]:
        """
        Сущности, записанные обменом в прошлых прогонах (метка есть, но другая).
        Созданные вручную (без метки) сюда не попадают.
        """
        model = self.model(kind)
        query = select(model.id).where(
            model.exchange_timestamp.is_not(None),
            model.exchange_timestamp != run_token,
        )
        for name, value in filters.items():
            column = getattr(model, name)
            query = query.where(column.is_(None) if value is None else column == value)
        return list((await self.db.execute(query)).scalars().all())

    async def get_option(self, key: str) -> Optional[str]:
        option = await self.db.get(ExchangeOption, key)
        return option.value if option else None

    async def set_option(self, key: str, value: str) -> None:
        option = await self.db.get(ExchangeOption, key)
        if option is None:
            self.db.add(ExchangeOption(key=key, value=value))
        else:
            option.value = value
        await self.db.flush()

    def clear_cache(self) -> None:
        self._ids.clear()

    async def release_memory(self) -> None:
        """Сбрасывает изменения в БД и очищает identity map и кэш Ид"""
        await self.db.flush()
        self.db.expunge_all()
        self._ids.clear()
