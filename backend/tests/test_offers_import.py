from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from onec_exchange.exceptions import ExchangeConfigError
from onec_exchange.models import ExchangeOption, Product
from xml_samples import catalog_xml, offer, offers_xml, product

PRICE_TYPES = (("pt-retail", "Розничная", "RUB"), ("pt-opt", "Оптовая", "USD"))
WHOLESALE_PRICE = (
    "<Цены><Цена><ИдТипаЦены>pt-opt</ИдТипаЦены>"
    "<ЦенаЗаЕдиницу>80</ЦенаЗаЕдиницу><Валюта>USD</Валюта></Цена></Цены>"
)


@pytest.fixture
async def catalog(run_import):
    await run_import(catalog_xml(products=[
        product("p1", "Кольцо", sku="R-1"),
        product("p2", "Серьги", sku="E-1"),
    ]))


async def _products(fetch_all):
    return {p.external_id: p for p in await fetch_all(Product)}


async def test_price_and_quantity(catalog, run_import, fetch_all):
    xml = offers_xml([offer("p1", price="1 234,56", quantity="5")])

    assert await run_import(xml, filename="offers.xml") == "success"

    item = (await _products(fetch_all))["p1"]
    assert item.regular_price == pytest.approx(1234.56)
    assert item.price == pytest.approx(1234.56)
    assert item.stock_quantity == 5
    assert item.stock_status == "instock"
    [currency] = await fetch_all(ExchangeOption, ExchangeOption.key == "currency")
    assert currency.value == "RUB"


async def test_zero_quantity_is_out_of_stock(catalog, run_import, fetch_all):
    await run_import(offers_xml([offer("p1", price="100", quantity="0")]), filename="offers.xml")
    assert (await _products(fetch_all))["p1"].stock_status == "outofstock"

    await run_import(
        offers_xml([offer("p1", price="100", quantity="0")]),
        filename="offers.xml",
        outofstock_status="onbackorder",
    )
    assert (await _products(fetch_all))["p1"].stock_status == "onbackorder"


async def test_warehouse_quantities_are_summed(catalog, run_import, fetch_all):
    warehouses = '<Склад ИдСклада="w1" КоличествоНаСкладе="3"/><Склад ИдСклада="w2" КоличествоНаСкладе="2,5"/>'
    await run_import(offers_xml([offer("p1", price="10", extra=warehouses)]), filename="offers.xml")

    item = (await _products(fetch_all))["p1"]
    assert item.stock_quantity == pytest.approx(5.5)
    assert item.stock_status == "instock"


async def test_unknown_offer_is_skipped(catalog, run_import, fetch_all, registry):
    xml = offers_xml([
        offer("missing", price="10", quantity="1"),
        offer("p2", price="20", quantity="1"),
    ])

    assert await run_import(xml, filename="offers.xml") == "success"

    products = await _products(fetch_all)
    assert set(products) == {"p1", "p2"}
    assert products["p2"].regular_price == 20
    stats = registry.list_runs()[0]["stats"]
    assert stats["skipped"] == 1
    assert stats["updated"] == 1


async def test_first_price_type_by_default(catalog, run_import, fetch_all):
    xml = offers_xml([offer("p1", price="100", quantity="1", extra=WHOLESALE_PRICE)], price_types=PRICE_TYPES)

    await run_import(xml, filename="offers.xml")

    item = (await _products(fetch_all))["p1"]
    assert item.regular_price == 100
    assert item.prices == {
        "pt-opt": {"ИдТипаЦены": "pt-opt", "ЦенаЗаЕдиницу": "80", "Валюта": "USD"},
    }


async def test_configured_price_type(catalog, run_import, fetch_all):
    xml = offers_xml([offer("p1", price="100", quantity="1", extra=WHOLESALE_PRICE)], price_types=PRICE_TYPES)

    await run_import(xml, filename="offers.xml", price_type="Оптовая")

    item = (await _products(fetch_all))["p1"]
    assert item.regular_price == 80
    assert set(item.prices) == {"pt-retail"}
    [currency] = await fetch_all(ExchangeOption, ExchangeOption.key == "currency")
    assert currency.value == "USD"


async def test_unmatched_price_type_aborts_run(catalog, run_import, fetch_all, registry):
    xml = offers_xml([offer("p1", price="100", quantity="1")])

    with pytest.raises(ExchangeConfigError) as exc_info:
        await run_import(xml, filename="offers.xml", price_type="Закупочная")

    assert exc_info.value.as_response_line() == "ExchangeConfigError: Failed to match price type: Закупочная."
    assert (await _products(fetch_all))["p1"].regular_price is None
    assert registry.list_runs()[0]["status"] == "failed"


async def test_active_sale_price_is_kept(catalog, run_import, fetch_all, session_factory):
    async with session_factory() as session:
        db_item = (await session.execute(select(Product).where(Product.external_id == "p1"))).scalar_one()
        db_item.sale_price = 900.0
        await session.commit()

    await run_import(offers_xml([offer("p1", price="1000", quantity="1")]), filename="offers.xml")

    item = (await _products(fetch_all))["p1"]
    assert item.regular_price == 1000
    assert item.price == 900


async def test_expired_sale_is_reset(catalog, run_import, fetch_all, session_factory):
    async with session_factory() as session:
        db_item = (await session.execute(select(Product).where(Product.external_id == "p1"))).scalar_one()
        db_item.sale_price = 900.0
        db_item.date_on_sale_to = datetime.now(timezone.utc) - timedelta(days=1)
        await session.commit()

    await run_import(offers_xml([offer("p1", price="1000", quantity="1")]), filename="offers.xml")

    item = (await _products(fetch_all))["p1"]
    assert item.price == 1000
    assert item.sale_price is None
    assert item.date_on_sale_to is None


async def test_offers_changes_package(catalog, run_import, fetch_all):
    xml = offers_xml([offer("p1", price="50", quantity="2")], only_changes="true")
    xml = xml.replace("ПакетПредложений", "ИзмененияПакетаПредложений")

    assert await run_import(xml, filename="offers0_1.xml") == "success"

    assert (await _products(fetch_all))["p1"].regular_price == 50


def _two_prices(guid):
    prices = (
        "<Цены>"
        "<Цена><ИдТипаЦены>pt-opt</ИдТипаЦены><ЦенаЗаЕдиницу>80</ЦенаЗаЕдиницу><Валюта>USD</Валюта></Цена>"
        "<Цена><ИдТипаЦены>pt-retail</ИдТипаЦены><ЦенаЗаЕдиницу>100</ЦенаЗаЕдиницу><Валюта>RUB</Валюта></Цена>"
        "</Цены>"
    )
    return offer(guid, quantity="1", extra=prices)


async def test_configured_type_without_price_types_section(catalog, run_import, fetch_all):
    xml = offers_xml([_two_prices("p1")], price_types=None, only_changes="true")

    await run_import(xml, filename="offers0_1.xml", price_type="pt-retail")

    item = (await _products(fetch_all))["p1"]
    assert item.regular_price == 100
    assert set(item.prices) == {"pt-opt"}


async def test_configured_type_name_is_remembered_for_changes(catalog, run_import, fetch_all):
    full = offers_xml([offer("p1", price="100", quantity="1", extra=WHOLESALE_PRICE)], price_types=PRICE_TYPES)
    await run_import(full, filename="offers.xml", price_type="Оптовая")

    changes = offers_xml([_two_prices("p1")], price_types=None, only_changes="true")
    await run_import(changes, filename="offers0_1.xml", price_type="Оптовая")

    item = (await _products(fetch_all))["p1"]
    assert item.regular_price == 80
    assert set(item.prices) == {"pt-retail"}


async def test_without_preference_first_price_wins(catalog, run_import, fetch_all):
    await run_import(offers_xml([_two_prices("p1")], price_types=None), filename="offers.xml")

    assert (await _products(fetch_all))["p1"].regular_price == 80


async def test_default_currency_when_price_type_has_none(catalog, run_import, fetch_all):
    xml = offers_xml([offer("p1", price="100", quantity="1")], price_types=(("pt-retail", "Розничная", ""),))

    await run_import(xml, filename="offers.xml", currency="EUR")

    [currency] = await fetch_all(ExchangeOption, ExchangeOption.key == "currency")
    assert currency.value == "EUR"
