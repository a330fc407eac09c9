"""
Настройки обмена с 1С.

Все параметры читаются из переменных окружения (и .env в корне проекта)
с префиксом ONEC_. Значения по умолчанию подобраны под типовую выгрузку
"1С:Управление торговлей" / "УНФ".
"""
import os
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv, find_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

load_dotenv(find_dotenv(usecwd=True), override=False)

# Жёсткий потолок размера одной порции загрузки
MAX_FILE_LIMIT = "10M"

_SIZE_UNITS = {"G": 1073741824, "M": 1048576, "K": 1024}


def _env_bool(name: str, default: str = "false") -> bool:
    value = os.getenv(name, default).strip().lower()
    return value in {"1", "true", "yes", "y", "on"}


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def parse_size(value: str) -> int:
    """
    Перевод размера вида "10M", "512K", "1G" или "2048" в байты.
    Нечисловой префикс даёт 0.
    """
    value = (value or "").strip()
    if not value:
        return 0
    multiplier = _SIZE_UNITS.get(value[-1].upper())
    digits = value[:-1] if multiplier else value
    multiplier = multiplier or 1
    try:
        return int(float(digits.strip())) * multiplier
    except ValueError:
        return 0


def _available_memory_bytes() -> Optional[int]:
    """70% свободной памяти по /proc/meminfo (только Linux)"""
    try:
        with open("/proc/meminfo", "r", encoding="ascii") as meminfo:
            for line in meminfo:
                if line.startswith("MemFree:"):
                    kilobytes = int(line.split()[1])
                    return int(kilobytes * 1000 * 0.7)
    except (OSError, ValueError, IndexError):
        return None
    return None


class ExchangeSettings(BaseModel):
    """Параметры обмена"""

    data_dir: str = "./data/1c-exchange"

    # Аутентификация 1С (mode=checkauth)
    login: str = "admin"
    password: str = "admin"
    cookie_name: str = "onec_exchange"

    # Цены и остатки
    price_type: Optional[str] = None
    currency: Optional[str] = None
    outofstock_status: str = "outofstock"
    manage_stock: bool = True

    # Сопоставление записей
    match_by_sku: bool = False
    match_categories_by_title: bool = False
    match_properties_by_title: bool = False
    match_property_options_by_title: bool = False

    # Очистка и варианты
    prevent_clean: bool = False
    preserve_product_variations: bool = False
    disable_variations: bool = False
    assume_full_when_unknown: bool = False

    # Товары и свойства
    multiple_values_delimiter: Optional[str] = None
    product_description_to_content: bool = False
    preserve_product_fields: List[str] = []
    preserve_property_fields: List[str] = []
    requisite_properties: List[str] = []

    # Ограничения
    file_limit: str = MAX_FILE_LIMIT
    max_execution_time: int = 300
    cleanup_garbage: bool = True

    @classmethod
    def from_env(cls) -> "ExchangeSettings":
        return cls(
            data_dir=os.getenv("ONEC_DATA_DIR", "./data/1c-exchange"),
            login=os.getenv("ONEC_LOGIN", "admin"),
            password=os.getenv("ONEC_PASSWORD", "admin"),
            cookie_name=os.getenv("ONEC_COOKIE_NAME", "onec_exchange"),
            price_type=os.getenv("ONEC_PRICE_TYPE") or None,
            currency=os.getenv("ONEC_CURRENCY") or None,
            outofstock_status=os.getenv("ONEC_OUTOFSTOCK_STATUS", "outofstock"),
            manage_stock=_env_bool("ONEC_MANAGE_STOCK", "true"),
            match_by_sku=_env_bool("ONEC_MATCH_BY_SKU"),
            match_categories_by_title=_env_bool("ONEC_MATCH_CATEGORIES_BY_TITLE"),
            match_properties_by_title=_env_bool("ONEC_MATCH_PROPERTIES_BY_TITLE"),
            match_property_options_by_title=_env_bool("ONEC_MATCH_PROPERTY_OPTIONS_BY_TITLE"),
            prevent_clean=_env_bool("ONEC_PREVENT_CLEAN"),
            preserve_product_variations=_env_bool("ONEC_PRESERVE_PRODUCT_VARIATIONS"),
            disable_variations=_env_bool("ONEC_DISABLE_VARIATIONS"),
            assume_full_when_unknown=_env_bool("ONEC_ASSUME_FULL_WHEN_UNKNOWN"),
            multiple_values_delimiter=os.getenv("ONEC_MULTIPLE_VALUES_DELIMITER") or None,
            product_description_to_content=_env_bool("ONEC_PRODUCT_DESCRIPTION_TO_CONTENT"),
            preserve_product_fields=_env_list("ONEC_PRESERVE_PRODUCT_FIELDS"),
            preserve_property_fields=_env_list("ONEC_PRESERVE_PROPERTY_FIELDS"),
            requisite_properties=_env_list("ONEC_REQUISITE_PROPERTIES"),
            file_limit=os.getenv("ONEC_FILE_LIMIT", MAX_FILE_LIMIT),
            max_execution_time=int(os.getenv("ONEC_MAX_EXECUTION_TIME", "300")),
            cleanup_garbage=_env_bool("ONEC_CLEANUP_GARBAGE", "true"),
        )

    def type_dir(self, exchange_type: str) -> Path:
        """Рабочий каталог для type=catalog|sale"""
        return Path(self.data_dir) / exchange_type

    def file_limit_bytes(self) -> int:
        """
        Максимальный размер порции, объявляемый 1С в ответе на mode=init:
        минимум из жёсткого потолка, настройки и доступной памяти.
        """
        limits = [parse_size(MAX_FILE_LIMIT)]
        configured = parse_size(self.file_limit)
        if configured > 0:
            limits.append(configured)
        available = _available_memory_bytes()
        if available:
            limits.append(available)
        return min(limits)


_settings: Optional[ExchangeSettings] = None


def get_settings() -> ExchangeSettings:
    """Глобальные настройки (читаются один раз)"""
    global _settings
    if _settings is None:
        _settings = ExchangeSettings.from_env()
        logger.debug(f"Настройки обмена загружены: data_dir={_settings.data_dir}")
    return _settings
