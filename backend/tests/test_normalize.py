import pytest

from onec_exchange.config import ExchangeSettings, parse_size
from onec_exchange.services.normalize import is_variant_id, parse_bool, parse_decimal, split_variant_id
from onec_exchange.services.records import CharacteristicRecord, FieldBuffer, OfferRecord, PriceEntry


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1 234,56", 1234.56),
        ("12.5", 12.5),
        ("1 000", 1000.0),
        ("  7 ", 7.0),
        ("abc", 0.0),
        ("", 0.0),
        (None, 0.0),
    ],
)
def test_parse_decimal(raw, expected):
    assert parse_decimal(raw) == pytest.approx(expected)


def test_parse_bool():
    assert parse_bool("true")
    assert parse_bool(" TRUE ")
    assert not parse_bool("false")
    assert not parse_bool(None)


def test_split_variant_id():
    assert split_variant_id("A#1") == ("A", "1")
    assert split_variant_id(" B ") == ("B", None)
    assert is_variant_id("A#1")
    assert not is_variant_id("A")


def test_field_buffer_defaults():
    fields = FieldBuffer()
    fields.append("Наименование", "Кольцо ")
    fields.append("Наименование", "золотое")
    assert fields.get("Наименование") == "Кольцо золотое"
    assert fields.get("Артикул") == ""
    assert fields.get("Артикул", "нет") == "нет"
    assert fields.decimal("Количество") is None


def test_characteristic_name_drops_suffix():
    characteristic = CharacteristicRecord()
    characteristic.fields.append("Наименование", "Размер (RU)")
    assert characteristic.name == "Размер"


def test_price_entry_coefficient():
    entry = PriceEntry()
    entry.fields.append("ИдТипаЦены", "pt")
    entry.fields.append("ЦенаЗаЕдиницу", "100,50")
    entry.fields.append("Коэффициент", "2")
    assert entry.unit_price() == pytest.approx(201.0)

    no_type = PriceEntry()
    assert no_type.type_id is None


def test_offer_quantity_falls_back_to_warehouses():
    offer = OfferRecord()
    offer.add_warehouse_quantity(2)
    offer.add_warehouse_quantity(3.5)
    assert offer.quantity == pytest.approx(5.5)

    offer.fields.append("Количество", "1")
    assert offer.quantity == 1.0


@pytest.mark.parametrize(
    "raw, expected",
    [("10M", 10485760), ("512K", 524288), ("1G", 1073741824), ("2048", 2048), ("xx", 0)],
)
def test_parse_size(raw, expected):
    assert parse_size(raw) == expected


def test_file_limit_never_exceeds_ceiling():
    settings = ExchangeSettings(file_limit="1G")
    assert settings.file_limit_bytes() <= 10485760
    assert ExchangeSettings(file_limit="512K").file_limit_bytes() <= 524288
