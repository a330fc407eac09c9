from onec_exchange.models import Product
from onec_exchange.services.records import CharacteristicRecord, ProductRecord
from onec_exchange.services.variant_aggregator import SubEntity, VariantAggregator, build_variation_axis
from xml_samples import catalog_xml, offer, offers_xml, product


def _characteristic(name, value):
    record = CharacteristicRecord()
    record.fields.append("Наименование", name)
    record.fields.append("Значение", value)
    return record


def _catalog(*products, only_changes="false"):
    return catalog_xml(products=list(products), only_changes=only_changes)


RING_16 = product("ring#c16", "Кольцо", sku="R-16", characteristics=[("Размер", "16")])
RING_17 = product("ring#c17", "Кольцо", sku="R-17", characteristics=[("Размер", "17")])
EARRING = product("earring#c1", "Серьги", characteristics=[("Размер (RU)", "18")])
RING_17_DELETED = product("ring#c17", "Кольцо", sku="R-17", characteristics=[("Размер", "17")], status="Удален")


def test_variation_axis_is_sorted_and_unique():
    entries = [
        SubEntity("p#2", "p", [_characteristic("Размер", "17"), _characteristic("Цвет", "Белый")]),
        SubEntity("p#1", "p", [_characteristic("Размер", "16"), _characteristic("Цвет", "Белый")]),
        SubEntity("p#3", "p", [_characteristic("Размер", "")]),
    ]
    assert build_variation_axis(entries) == {"Размер": ["16", "17"], "Цвет": ["Белый"]}


def test_variation_axis_ignores_deleted_entries():
    entries = [
        SubEntity("p#1", "p", [_characteristic("Размер", "16")], product=ProductRecord()),
        SubEntity("p#2", "p", [_characteristic("Размер", "17")], product=ProductRecord(status="Удален")),
    ]
    assert build_variation_axis(entries) == {"Размер": ["16"]}


async def test_aggregator_flushes_on_parent_change():
    flushed = []

    class Recorder(VariantAggregator):
        async def apply(self, entries):
            flushed.append([entry.guid for entry in entries])

    aggregator = Recorder(reconciler=None)
    for guid in ("a#1", "a#2", "b#1", "a#3"):
        await aggregator.offer(SubEntity(guid, guid.split("#")[0]))
    await aggregator.flush()
    await aggregator.flush()

    assert flushed == [["a#1", "a#2"], ["b#1"], ["a#3"]]
    assert aggregator.groups_flushed == 3


async def _by_external_id(fetch_all):
    return {p.external_id: p for p in await fetch_all(Product)}


async def test_variable_products_from_catalog(run_import, fetch_all):
    assert await run_import(_catalog(RING_16, RING_17, EARRING)) == "success"

    products = await _by_external_id(fetch_all)
    ring, earring = products["ring"], products["earring"]
    assert ring.product_type == "variable"
    assert earring.product_type == "variable"
    assert ring.attributes == [{"name": "Размер", "options": ["16", "17"], "variation": True}]
    assert earring.attributes == [{"name": "Размер", "options": ["18"], "variation": True}]

    ring_16 = products["ring#c16"]
    assert ring_16.product_type == "variation"
    assert ring_16.parent_id == ring.id
    assert ring_16.name == "Кольцо"
    assert ring_16.sku == "R-16"
    assert ring_16.menu_order == 1
    assert ring_16.variation_attributes == {"Размер": "16"}
    assert products["ring#c17"].menu_order == 2
    assert products["earring#c1"].parent_id == earring.id
    assert products["earring#c1"].variation_attributes == {"Размер": "18"}


async def test_missing_variation_is_deleted(run_import, fetch_all):
    await run_import(_catalog(RING_16, RING_17, EARRING))
    await run_import(_catalog(RING_16, EARRING))

    products = await _by_external_id(fetch_all)
    assert "ring#c17" not in products
    assert products["ring"].attributes == [{"name": "Размер", "options": ["16"], "variation": True}]
    assert products["ring"].status == "publish"
    assert products["earring#c1"].parent_id == products["earring"].id


async def test_preserve_product_variations(run_import, fetch_all):
    await run_import(_catalog(RING_16, RING_17))
    await run_import(_catalog(RING_16), preserve_product_variations=True)

    products = await _by_external_id(fetch_all)
    assert products["ring#c17"].parent_id == products["ring"].id


async def test_disable_variations(run_import, fetch_all):
    await run_import(_catalog(RING_16, RING_17), disable_variations=True)

    products = await _by_external_id(fetch_all)
    assert set(products) == {"ring#c16", "ring#c17"}
    assert all(p.product_type == "simple" and p.parent_id is None for p in products.values())


async def test_variation_offers(run_import, fetch_all):
    await run_import(_catalog(RING_16, RING_17))

    xml = offers_xml([
        offer("ring#c16", price="1 000", quantity=2, characteristics=[("Размер", "16")]),
        offer("ring#c17", price="1 100", quantity=0, characteristics=[("Размер", "17")]),
    ])
    assert await run_import(xml, filename="offers.xml") == "success"

    products = await _by_external_id(fetch_all)
    ring_16, ring_17 = products["ring#c16"], products["ring#c17"]
    assert ring_16.regular_price == 1000
    assert ring_16.stock_quantity == 2
    assert ring_16.stock_status == "instock"
    assert ring_17.regular_price == 1100
    assert ring_17.stock_status == "outofstock"
    assert products["ring"].product_type == "variable"


async def test_variation_offers_without_parent_are_skipped(run_import, fetch_all, registry):
    xml = offers_xml([offer("ghost#c1", price="10", quantity=1, characteristics=[("Размер", "1")])])

    assert await run_import(xml, filename="offers.xml") == "success"

    assert await fetch_all(Product) == []
    assert registry.list_runs()[0]["stats"]["skipped"] == 1


async def test_variation_marked_deleted_is_removed(run_import, fetch_all):
    await run_import(_catalog(RING_16, RING_17))
    await run_import(_catalog(RING_16, RING_17_DELETED))

    products = await _by_external_id(fetch_all)
    assert "ring#c17" not in products
    assert products["ring#c16"].status == "publish"
    assert products["ring"].attributes == [{"name": "Размер", "options": ["16"], "variation": True}]


async def test_variation_marked_deleted_is_trashed_when_preserved(run_import, fetch_all):
    await run_import(_catalog(RING_16, RING_17))
    await run_import(_catalog(RING_16, RING_17_DELETED), preserve_product_variations=True)

    products = await _by_external_id(fetch_all)
    assert products["ring#c17"].status == "trash"
    assert products["ring"].attributes == [{"name": "Размер", "options": ["16"], "variation": True}]


async def test_parent_takes_fields_from_first_kept_variation(run_import, fetch_all):
    ring_16_deleted = product("ring#c16", "Кольцо старое", characteristics=[("Размер", "16")], status="Удален")
    await run_import(_catalog(ring_16_deleted, RING_17))

    products = await _by_external_id(fetch_all)
    assert products["ring"].name == "Кольцо"
    assert products["ring"].status == "publish"
    assert "ring#c16" not in products
    assert products["ring#c17"].parent_id == products["ring"].id
