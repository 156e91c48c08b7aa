import logging

import pytest

from dental_budget.core.exceptions import SyncError


@pytest.mark.asyncio
async def test_list_all_walks_every_page(procedure_source, fake_stores):
    items = await procedure_source.list_all()

    assert len(items) == len(fake_stores.procedures)
    assert fake_stores.count("GET", "/procedures") == 3


@pytest.mark.asyncio
async def test_list_all_stops_at_page_limit(procedure_source, fake_stores, caplog):
    with caplog.at_level(logging.WARNING):
        items = await procedure_source.list_all(max_pages=2)

    assert len(items) == 4
    assert fake_stores.count("GET", "/procedures") == 2
    assert any("page limit" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_list_all_passes_specialty_filter(procedure_source):
    items = await procedure_source.list_all(specialty="Dentística")

    assert [item.get("id") for item in items] == [1, 2, None]


@pytest.mark.asyncio
async def test_fetch_page_reports_last_page(procedure_source):
    _, last = await procedure_source.fetch_page(0, 2)
    content, final = await procedure_source.fetch_page(2, 2)

    assert last is False
    assert final is True
    assert len(content) == 2


@pytest.mark.asyncio
async def test_load_catalog_normalizes_entries(procedure_source):
    catalog = await procedure_source.load_catalog()

    assert len(catalog) == 5
    assert catalog.find_by_id(2).price_cents == 85000
    assert catalog.find_by_id("5").specialty == "Periodontia"
    assert [p.id for p in catalog.list_by_specialty("dentística")] == ["2", "1"]


@pytest.mark.asyncio
async def test_load_catalog_empty_source_warns(procedure_source, fake_stores, caplog):
    fake_stores.procedures = []

    with caplog.at_level(logging.WARNING):
        catalog = await procedure_source.load_catalog()

    assert len(catalog) == 0
    assert any("empty" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_catalog_failure_raises_sync_error(procedure_source, fake_stores):
    fake_stores.fail.add("catalog")

    with pytest.raises(SyncError) as exc:
        await procedure_source.load_catalog()
    assert exc.value.step == "catalog"
    assert exc.value.status_code == 503
