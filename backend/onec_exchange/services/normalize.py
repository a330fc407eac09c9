"""
Нормализация значений из выгрузки 1С: десятичные числа, логические флаги, Ид.
"""
import re
from typing import Any, Optional, Tuple

VARIANT_SEPARATOR = "#"

_SPACES = re.compile(r"\s+")


def parse_decimal(value: Any) -> float:
    """
    Число из строки 1С: запятая как десятичный разделитель, пробелы
    (в том числе неразрывные) как разделители разрядов.

    "1 234,56" -> 1234.56, "12.5" -> 12.5, мусор -> 0.0
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = _SPACES.sub("", str(value).replace(",", "."))
    try:
        return float(text)
    except ValueError:
        return 0.0


def parse_bool(value: Any) -> bool:
    """Флаг 1С: "true"/"false", "1"/"0", "да"/"нет"."""
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"true", "1", "да", "yes"}


def normalize_guid(value: Any) -> str:
    """Ид из выгрузки без окружающих пробелов; пустое значение -> ''."""
    return str(value or "").strip()


def is_variant_id(external_id: str) -> bool:
    return VARIANT_SEPARATOR in (external_id or "")


def split_variant_id(external_id: str) -> Tuple[str, Optional[str]]:
    """
    Разделяет составной Ид "<товар>#<характеристика>".
    Для простого Ид характеристика None.
    """
    guid = normalize_guid(external_id)
    if VARIANT_SEPARATOR not in guid:
        return guid, None
    product_guid, characteristic_guid = guid.split(VARIANT_SEPARATOR, 1)
    return product_guid, characteristic_guid
