"""
Записи, собираемые из потока CommerceML.

Каждая запись живёт от открывающего до закрывающего тега своего контейнера
(Группа, Свойство, Товар, Предложение, Документ) и после передачи в сверку
отбрасывается. Текст полей накапливается через FieldBuffer.append, поля
читаются только через FieldBuffer.get со значением по умолчанию.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from onec_exchange.services.normalize import normalize_guid, parse_bool, parse_decimal

# "Размер (RU)" -> "Размер"
_CHARACTERISTIC_SUFFIX = re.compile(r"\s+\(.*\)$")


@dataclass
class FieldBuffer:
    """Текстовые поля записи: имя элемента -> накопленный текст"""

    values: Dict[str, str] = field(default_factory=dict)

    def append(self, name: str, text: str) -> None:
        self.values[name] = self.values.get(name, "") + text

    def get(self, name: str, default: str = "") -> str:
        value = self.values.get(name)
        if value is None:
            return default
        return value.strip()

    def has(self, name: str) -> bool:
        return name in self.values

    def decimal(self, name: str) -> Optional[float]:
        if name not in self.values:
            return None
        return parse_decimal(self.values[name])


@dataclass
class RequisiteRecord:
    """ЗначениеРеквизита: наименование и одно или несколько значений"""

    fields: FieldBuffer = field(default_factory=FieldBuffer)
    values: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.fields.get("Наименование")

    @property
    def value(self) -> str:
        for value in self.values:
            if value.strip():
                return value.strip()
        return self.fields.get("Значение")

    def add_value(self, text: str) -> None:
        self.values.append(text)


@dataclass
class CharacteristicRecord:
    """ХарактеристикаТовара: ось варианта (Размер, Цвет) и её значение"""

    fields: FieldBuffer = field(default_factory=FieldBuffer)

    @property
    def name(self) -> str:
        return _CHARACTERISTIC_SUFFIX.sub("", self.fields.get("Наименование"))

    @property
    def value(self) -> str:
        return self.fields.get("Значение")


@dataclass
class GroupRecord:
    parent_id: str = ""
    fields: FieldBuffer = field(default_factory=FieldBuffer)
    # Группа с вложенными группами записывается до закрытия своего тега
    has_children: bool = False

    @property
    def id(self) -> str:
        return normalize_guid(self.fields.get("Ид"))

    @property
    def name(self) -> str:
        return self.fields.get("Наименование")

    @property
    def description(self) -> str:
        return self.fields.get("Описание")


@dataclass
class PropertyOptionRecord:
    fields: FieldBuffer = field(default_factory=FieldBuffer)

    @property
    def id(self) -> str:
        return normalize_guid(self.fields.get("ИдЗначения"))

    @property
    def value(self) -> str:
        return self.fields.get("Значение")


@dataclass
class PropertyRecord:
    fields: FieldBuffer = field(default_factory=FieldBuffer)
    options: List[PropertyOptionRecord] = field(default_factory=list)

    @property
    def id(self) -> str:
        return normalize_guid(self.fields.get("Ид"))

    @property
    def name(self) -> str:
        return self.fields.get("Наименование") or self.id

    @property
    def value_type(self) -> str:
        return self.fields.get("ТипЗначений")

    def attribute_type(self, multiple_values_delimiter: Optional[str] = None) -> str:
        """Справочник (или не указанный тип) -> select, иначе text"""
        if not self.value_type or self.value_type == "Справочник" or multiple_values_delimiter:
            return "select"
        return "text"


@dataclass
class PropertyValueRecord:
    """ЗначенияСвойства товара: Ид свойства и значения (Ид варианта или текст)"""

    fields: FieldBuffer = field(default_factory=FieldBuffer)
    values: List[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return normalize_guid(self.fields.get("Ид"))

    def non_empty_values(self) -> List[str]:
        return [value.strip() for value in self.values if value.strip()]


@dataclass
class ProductRecord:
    status: str = ""
    fields: FieldBuffer = field(default_factory=FieldBuffer)
    group_ids: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    manufacturer: FieldBuffer = field(default_factory=FieldBuffer)
    unit_conversion: FieldBuffer = field(default_factory=FieldBuffer)
    characteristics: List[CharacteristicRecord] = field(default_factory=list)
    property_values: List[PropertyValueRecord] = field(default_factory=list)
    requisites: List[RequisiteRecord] = field(default_factory=list)

    @property
    def id(self) -> str:
        return normalize_guid(self.fields.get("Ид"))

    @property
    def name(self) -> str:
        return self.fields.get("Наименование")

    @property
    def sku(self) -> str:
        return self.fields.get("Артикул")

    @property
    def barcode(self) -> str:
        return self.fields.get("Штрихкод")

    @property
    def description(self) -> str:
        return self.fields.get("Описание")

    @property
    def is_deleted(self) -> bool:
        return self.status == "Удален"

    @property
    def is_draft(self) -> bool:
        return self.status == "Черновик"

    def category_ids(self) -> List[str]:
        return [normalize_guid(guid) for guid in self.group_ids if guid.strip()]

    def image_paths(self) -> List[str]:
        return [path.strip() for path in self.images if path.strip()]


@dataclass
class PriceType:
    fields: FieldBuffer = field(default_factory=FieldBuffer)

    @property
    def id(self) -> str:
        return normalize_guid(self.fields.get("Ид"))

    @property
    def name(self) -> str:
        return self.fields.get("Наименование")

    @property
    def currency(self) -> str:
        return self.fields.get("Валюта")

    def matches(self, preference: str) -> bool:
        return bool(preference) and preference in (self.id, self.name)


@dataclass
class PriceEntry:
    fields: FieldBuffer = field(default_factory=FieldBuffer)

    @property
    def type_id(self) -> Optional[str]:
        """Ид типа цены; None если элемента ИдТипаЦены нет вовсе"""
        if not self.fields.has("ИдТипаЦены"):
            return None
        return normalize_guid(self.fields.get("ИдТипаЦены"))

    @property
    def price_per_unit(self) -> Optional[float]:
        return self.fields.decimal("ЦенаЗаЕдиницу")

    @property
    def coefficient(self) -> Optional[float]:
        return self.fields.decimal("Коэффициент")

    def unit_price(self) -> Optional[float]:
        """Цена за единицу с учётом коэффициента (нулевой коэффициент игнорируется)"""
        price = self.price_per_unit
        if price is None:
            return None
        coefficient = self.coefficient
        if coefficient:
            price *= coefficient
        return price

    def as_dict(self) -> Dict[str, str]:
        return {name: self.fields.get(name) for name in self.fields.values}


@dataclass
class OfferRecord:
    fields: FieldBuffer = field(default_factory=FieldBuffer)
    characteristics: List[CharacteristicRecord] = field(default_factory=list)
    price: Optional[PriceEntry] = None
    extra_prices: Dict[str, PriceEntry] = field(default_factory=dict)
    warehouse_quantity: Optional[float] = None

    @property
    def id(self) -> str:
        return normalize_guid(self.fields.get("Ид"))

    @property
    def name(self) -> str:
        return self.fields.get("Наименование")

    def add_warehouse_quantity(self, quantity: float) -> None:
        self.warehouse_quantity = (self.warehouse_quantity or 0.0) + quantity

    @property
    def quantity(self) -> Optional[float]:
        """Количество, а при его отсутствии сумма остатков по складам"""
        if self.fields.has("Количество"):
            return self.fields.decimal("Количество")
        return self.warehouse_quantity


@dataclass
class CounterpartyRecord:
    fields: FieldBuffer = field(default_factory=FieldBuffer)

    @property
    def id(self) -> str:
        return normalize_guid(self.fields.get("Ид"))

    @property
    def name(self) -> str:
        return self.fields.get("Наименование")

    @property
    def role(self) -> str:
        return self.fields.get("Роль")

    @property
    def is_guest(self) -> bool:
        return self.name == "Гость"

    def as_dict(self) -> Dict[str, str]:
        return {name: self.fields.get(name) for name in self.fields.values}


@dataclass
class OrderLineRecord:
    fields: FieldBuffer = field(default_factory=FieldBuffer)
    requisites: List[RequisiteRecord] = field(default_factory=list)
    characteristics: List[CharacteristicRecord] = field(default_factory=list)

    @property
    def id(self) -> str:
        return normalize_guid(self.fields.get("Ид"))

    @property
    def name(self) -> str:
        return self.fields.get("Наименование")

    @property
    def price(self) -> float:
        return parse_decimal(self.fields.get("ЦенаЗаЕдиницу"))

    @property
    def quantity(self) -> float:
        """Количество с учётом коэффициента единицы"""
        quantity = parse_decimal(self.fields.get("Количество"))
        coefficient = self.fields.decimal("Коэффициент")
        if coefficient:
            quantity *= coefficient
        return quantity

    @property
    def total(self) -> float:
        if self.fields.get("Сумма"):
            return parse_decimal(self.fields.get("Сумма"))
        return self.price * self.quantity

    def requisite_value(self, name: str) -> str:
        for requisite in self.requisites:
            if requisite.name == name:
                return requisite.value
        return ""

    @property
    def is_service(self) -> bool:
        return self.requisite_value("ТипНоменклатуры") == "Услуга"


@dataclass
class OrderDocumentRecord:
    fields: FieldBuffer = field(default_factory=FieldBuffer)
    counterparties: List[CounterpartyRecord] = field(default_factory=list)
    lines: List[OrderLineRecord] = field(default_factory=list)
    requisites: List[RequisiteRecord] = field(default_factory=list)

    @property
    def id(self) -> str:
        return normalize_guid(self.fields.get("Ид"))

    @property
    def number(self) -> str:
        return self.fields.get("Номер")

    @property
    def is_sale_order(self) -> bool:
        return (
            self.fields.get("ХозОперация") == "Заказ товара"
            and self.fields.get("Роль") == "Продавец"
        )

    @property
    def comment(self) -> str:
        return self.fields.get("Комментарий")

    @property
    def currency(self) -> str:
        return self.fields.get("Валюта")

    @property
    def total(self) -> Optional[float]:
        if not self.fields.get("Сумма"):
            return None
        return parse_decimal(self.fields.get("Сумма"))

    @property
    def contragent_name(self) -> str:
        if not self.counterparties:
            return ""
        return self.counterparties[0].name

    def order_date(self) -> Optional[datetime]:
        """Дата + Время документа; нераспознанная дата -> None"""
        date = self.fields.get("Дата")
        if not date:
            return None
        time = self.fields.get("Время")
        raw = f"{date} {time}" if time else date
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d", "%d.%m.%Y %H:%M:%S", "%d.%m.%Y"):
            try:
                return datetime.strptime(raw, fmt)
            except ValueError:
                continue
        return None

    def requisite_value(self, name: str) -> str:
        for requisite in self.requisites:
            if requisite.name == name:
                return requisite.value
        return ""

    def has_requisite(self, name: str, value: str) -> bool:
        return any(r.name == name and r.value == value for r in self.requisites)

    @property
    def is_marked_for_deletion(self) -> bool:
        return parse_bool(self.requisite_value("ПометкаУдаления"))
