import asyncio
import threading
import zipfile

import pytest

from onec_exchange.exceptions import ExchangeError, ExchangeLockError, ExchangePathError, ExchangeXMLError
from onec_exchange.models import CatalogSection, ExchangeOption, Order, Product
from onec_exchange.services import exchange_service as exchange_service_module
from onec_exchange.services.exchange_service import ExchangeService
from onec_exchange.services.file_lock import exclusive_lock
from xml_samples import catalog_xml, document, group, order_line, orders_xml, product


@pytest.fixture
def service(db, settings, registry, events):
    return ExchangeService(db, settings, registry=registry, events=events)


@pytest.mark.parametrize("filename", ["../../etc/passwd", "a/b.xml", "..", "", "import.txt", "import xml.xml"])
async def test_unsafe_filenames_rejected(service, registry, filename):
    with pytest.raises(ExchangePathError):
        await service.import_file("catalog", filename)
    assert registry.list_runs() == []


async def test_import_rejects_archives(service):
    with pytest.raises(ExchangePathError):
        await service.import_file("catalog", "import.zip")


def test_unknown_exchange_type(service):
    with pytest.raises(ExchangePathError):
        service.resolve_path("reports", "import.xml")


def test_resolve_path_stays_in_type_dir(service, settings):
    path = service.resolve_path("catalog", "import0_1.xml")
    assert path == (settings.type_dir("catalog").resolve() / "import0_1.xml")


@pytest.mark.parametrize("filename, namespace", [
    ("import.xml", "import"),
    ("import0_1.xml", "import"),
    ("offers0_1.xml", "offers"),
    ("orders-2024.xml", "orders"),
])
def test_namespace_for(filename, namespace):
    assert ExchangeService.namespace_for(filename) == namespace


@pytest.mark.parametrize("filename", ["prices.xml", "0_import.xml"])
def test_unknown_namespace(filename):
    with pytest.raises(ExchangeError):
        ExchangeService.namespace_for(filename)


async def test_begin_run_cleans_directory(service, settings):
    directory = settings.type_dir("catalog")
    directory.mkdir(parents=True)
    (directory / "import.xml").write_text("old")

    file_limit = await service.begin_run("catalog")

    assert list(directory.iterdir()) == []
    assert 0 < file_limit <= 10 * 1024 * 1024


async def test_begin_run_respects_configured_limit(db, settings):
    service = ExchangeService(db, settings.model_copy(update={"file_limit": "512K"}))
    assert 0 < await service.begin_run("sale") <= 512 * 1024


async def test_begin_run_keeps_files_without_cleanup(db, settings):
    directory = settings.type_dir("catalog")
    directory.mkdir(parents=True)
    (directory / "import.xml").write_text("old")

    service = ExchangeService(db, settings.model_copy(update={"cleanup_garbage": False}))
    await service.begin_run("catalog")

    assert (directory / "import.xml").exists()


async def test_append_file_accumulates_chunks(service, settings):
    xml = catalog_xml(groups=[group("g1", "Кольца")]).encode("utf-8")
    middle = len(xml) // 2

    await service.append_file("catalog", "import.xml", xml[:middle])
    await service.append_file("catalog", "import.xml", xml[middle:])

    assert (settings.type_dir("catalog") / "import.xml").read_bytes() == xml


async def test_catalog_archive_gives_progress(run_import, settings, fetch_all):
    directory = settings.type_dir("catalog")
    directory.mkdir(parents=True)
    with zipfile.ZipFile(directory / "catalog.zip", "w") as zf:
        zf.writestr("import_files/ab/photo.jpg", b"jpg")

    xml = catalog_xml(groups=[group("g1", "Кольца")])
    assert await run_import(xml) == "progress"
    assert not (directory / "catalog.zip").exists()
    assert (directory / "import_files" / "ab" / "photo.jpg").exists()
    assert await fetch_all(CatalogSection) == []

    assert await run_import(xml) == "success"
    assert len(await fetch_all(CatalogSection)) == 1


async def test_locked_file_is_rejected(run_import, settings, registry):
    xml = catalog_xml(groups=[group("g1", "Кольца")])
    directory = settings.type_dir("catalog")
    directory.mkdir(parents=True)
    (directory / "import.xml").write_text(xml, encoding="utf-8")

    with open(directory / "import.xml", "rb") as holder, exclusive_lock(holder, "import.xml"):
        with pytest.raises(ExchangeLockError):
            await run_import(xml)

    assert registry.list_runs()[0]["status"] == "failed"
    assert await run_import(xml) == "success"


async def test_malformed_xml_rolls_back_everything(run_import, fetch_all, registry):
    # Группы занимают несколько порций чтения и успевают записаться до ошибки
    groups = [group(f"g{index}", f"Раздел {index}") for index in range(200)]
    xml = catalog_xml(
        groups=groups,
        products=[product("p1", "Кольцо")],
    ).replace("</Товары>", "</Товар>", 1)

    with pytest.raises(ExchangeXMLError) as exc_info:
        await run_import(xml)

    assert "import.xml on line" in exc_info.value.message
    assert await fetch_all(CatalogSection) == []
    assert await fetch_all(Product) == []
    assert await fetch_all(ExchangeOption) == []
    run = registry.list_runs()[0]
    assert run["status"] == "failed"
    assert "import.xml" in run["error"]


async def test_failed_run_keeps_previous_state(run_import, fetch_all):
    await run_import(catalog_xml(groups=[group("g1", "Кольца"), group("g2", "Серьги")]))

    broken = catalog_xml(groups=[group("g1", "Кольца новые")]).replace("</КоммерческаяИнформация>", "")
    with pytest.raises(ExchangeXMLError):
        await run_import(broken)

    sections = {s.external_id: s.name for s in await fetch_all(CatalogSection)}
    assert sections == {"g1": "Кольца", "g2": "Серьги"}


async def test_unexpected_root_element(run_import):
    with pytest.raises(ExchangeXMLError) as exc_info:
        await run_import('<?xml version="1.0"?>\n<Каталог></Каталог>\n')
    assert "unexpected root element" in exc_info.value.message


async def test_successful_run_is_registered(run_import, fetch_all, registry):
    await run_import(catalog_xml(groups=[group("g1", "Кольца")]), filename="import0_1.xml")

    run = registry.list_runs()[0]
    assert run["status"] == "completed"
    assert run["namespace"] == "import"
    assert run["filename"] == "import0_1.xml"
    assert run["is_full"] is True
    assert run["stats"]["created"] == 1
    assert any("Пиковое число открытых записей" in log["message"] for log in run["logs"])
    [option] = await fetch_all(ExchangeOption, ExchangeOption.key == "last_exchange_import")
    assert option.value


async def test_unknown_header_uses_setting(run_import, fetch_all, registry):
    xml = catalog_xml(groups=[group("g1", "Кольца")]).replace(' СодержитТолькоИзменения="false"', "")

    await run_import(xml)
    assert registry.list_runs()[0]["is_full"] is False

    await run_import(xml, assume_full_when_unknown=True)
    assert registry.list_runs()[0]["is_full"] is True


async def test_run_completed_event(run_import, events):
    received = []

    async def on_completed(namespace, is_full):
        received.append((namespace, is_full))

    def broken_subscriber(namespace, is_full):
        raise RuntimeError("subscriber failure")

    events.subscribe(broken_subscriber)
    events.subscribe(on_completed)

    assert await run_import(catalog_xml(groups=[group("g1", "Кольца")])) == "success"
    assert received == [("import", True)]


async def test_import_timeout(run_import, registry, monkeypatch):
    class SlowSource:
        def __init__(self, handler, context, **kwargs):
            pass

        async def run(self, fp):
            await asyncio.sleep(5)

    monkeypatch.setattr(exchange_service_module, "XMLEventSource", SlowSource)

    with pytest.raises(ExchangeError) as exc_info:
        await run_import(catalog_xml(groups=[group("g1", "Кольца")]), max_execution_time=1)

    assert "exceeded 1s" in exc_info.value.message
    assert registry.list_runs()[0]["status"] == "failed"


async def test_sale_upload_imports_orders(session_factory, settings, registry, events, fetch_all):
    async with session_factory() as session:
        session.add(Product(external_id="p1", name="Кольцо"))
        await session.commit()

    xml = orders_xml([document("1001", [order_line("p1", "Кольцо", price="100", quantity="1")])])
    async with session_factory() as session:
        service = ExchangeService(session, settings, registry=registry, events=events)
        await service.begin_run("sale")
        assert await service.append_file("sale", "orders-1.xml", xml.encode("utf-8")) == "success"

    [order] = await fetch_all(Order)
    assert order.number == "1001"
    assert order.total == 100
    assert registry.list_runs()[0]["namespace"] == "orders"


async def test_sale_upload_of_archive(session_factory, settings, registry, events, fetch_all, tmp_path):
    xml = orders_xml([document("1002", [], total="0")])
    archive = tmp_path / "orders.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("orders-1.xml", xml)

    async with session_factory() as session:
        service = ExchangeService(session, settings, registry=registry, events=events)
        await service.begin_run("sale")
        await service.append_file("sale", "orders.zip", archive.read_bytes())

    assert [order.number for order in await fetch_all(Order)] == ["1002"]
    assert not (settings.type_dir("sale") / "orders.zip").exists()


async def test_archives_are_unpacked_in_worker_thread(service, settings, monkeypatch):
    threads = []

    def recording_unpack(directory):
        threads.append(threading.get_ident())
        return 1

    monkeypatch.setattr(exchange_service_module, "unpack_archives", recording_unpack)

    assert await service.import_file("catalog", "import.xml") == "progress"
    await service.append_file("sale", None, b"")

    assert len(threads) == 2
    assert threading.get_ident() not in threads
