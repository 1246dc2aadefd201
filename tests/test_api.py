import io
from datetime import date, timedelta

import pytest
from openpyxl import load_workbook

from models import MonthlyMeterInstallation, RegisteredMeters
from services.report_builder import XLSX_MEDIA_TYPE


@pytest.mark.asyncio
async def test_create_substation(client):
    r = await client.post("/substations", json={"name": "ТП-3"})
    assert r.status_code == 201
    assert r.json()["name"] == "ТП-3"

    r = await client.post("/substations", json={"name": "ТП-3"})
    assert r.status_code == 409
    assert r.json()["field"] == "name"

    r = await client.post("/substations", json={"name": "ab"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_list_substations_sets_range_headers(client, substation):
    r = await client.get("/substations", params={"filter": '{"q": "ТП"}'})
    assert r.status_code == 200
    assert [s["name"] for s in r.json()] == ["ТП-1"]
    assert r.headers["X-Total-Count"] == "1"
    assert r.headers["Content-Range"] == "substations 0-0/1"


@pytest.mark.asyncio
async def test_substation_not_found(client):
    r = await client.get("/substations/999")
    assert r.status_code == 404
    r = await client.get("/substations/999/summary")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_billing_meters_flow(client, substation):
    r = await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 15, "registered_count": 12, "balance_group": "Быт", "date": "2023-06-01"},
    )
    assert r.status_code == 201
    assert r.json()["status"] == "ok"

    r = await client.get(
        f"/substations/{substation.id}/summary",
        params={"residential_date": "2023-06-01", "legal_date": "2023-06-01", "general_metering_date": "2023-06-01"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["groups"]["Быт"] == {"registered_count": 12, "unregistered_count": 3}
    assert body["groups"]["ЮР Sims"] == {"registered_count": 0, "unregistered_count": 0}

    r = await client.get(
        f"/substations/{substation.id}/installations",
        params={"balance_group": "Быт", "date": "2023-06-30"},
    )
    assert r.status_code == 200
    assert r.json()["monthly"]["installed_in_period"] == {"total_installed": 15, "registered_count": 12}

    r = await client.get(f"/substations/{substation.id}/logs")
    assert r.status_code == 200
    assert r.json()[0]["message"].startswith("Добавлено: 15 12 Быт")


@pytest.mark.asyncio
async def test_billing_meters_rejects_registered_above_total(client, substation):
    r = await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 10, "registered_count": 20, "balance_group": "Быт", "date": "2023-06-01"},
    )
    assert r.status_code == 422
    assert r.json()["field"] == "registered_count"
    assert await MonthlyMeterInstallation.all().count() == 0


@pytest.mark.asyncio
async def test_billing_meters_rejects_future_date(client, substation):
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    r = await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 1, "registered_count": 1, "balance_group": "Быт", "date": tomorrow},
    )
    assert r.status_code == 422
    assert r.json()["field"] == "date"


@pytest.mark.asyncio
async def test_billing_meters_unknown_group(client, substation):
    r = await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 1, "registered_count": 1, "balance_group": "Other", "date": "2023-06-01"},
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_billing_meters_unknown_substation(client):
    r = await client.post(
        "/substations/999/billing-meters",
        json={"total_installed": 1, "registered_count": 1, "balance_group": "Быт", "date": "2023-06-01"},
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_rolled_back_write_returns_500(client, substation):
    await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 10, "registered_count": 5, "balance_group": "Быт", "date": "2023-07-01"},
    )
    await MonthlyMeterInstallation.filter(substation_id=substation.id).update(registered_count=12)

    r = await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 2, "registered_count": 2, "balance_group": "Быт", "date": "2023-06-01"},
    )
    assert r.status_code == 500
    assert not await RegisteredMeters.exists(date=date(2023, 6, 1))


@pytest.mark.asyncio
async def test_registrations(client, substation):
    r = await client.post(
        f"/substations/{substation.id}/registrations",
        json={"registered_count": 0, "balance_group": "ЮР П2", "date": "2023-06-01"},
    )
    assert r.status_code == 201
    assert r.json()["applied"] is False

    await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 5, "registered_count": 0, "balance_group": "ЮР П2", "date": "2023-06-01"},
    )
    r = await client.post(
        f"/substations/{substation.id}/registrations",
        json={"registered_count": 4, "balance_group": "ЮР П2", "date": "2023-06-01"},
    )
    assert r.status_code == 201
    assert r.json()["applied"] is True

    r = await client.get(f"/substations/{substation.id}/installations", params={"balance_group": "ЮР П2", "date": "2023-06-30"})
    assert r.json()["monthly"]["cumulative"] == {"total_installed": 5, "registered_count": 4}

    r = await client.post(
        f"/substations/{substation.id}/registrations",
        json={"registered_count": 2, "balance_group": "ЮР П2", "date": "2023-06-01"},
    )
    assert r.status_code == 422
    assert r.json()["field"] == "registered_count"


@pytest.mark.asyncio
async def test_technical_meters(client, substation):
    r = await client.post(f"/substations/{substation.id}/technical-meters", json={"quantity": 5, "under_voltage": 2})
    assert r.status_code == 201
    assert r.json() == {"quantity": 5, "under_voltage": 2}

    r = await client.post(f"/substations/{substation.id}/technical-meters", json={"quantity": 1, "under_voltage": 2})
    assert r.status_code == 422
    assert r.json()["field"] == "under_voltage"

    r = await client.get("/technical-meters/totals")
    assert r.json() == {"quantity": 5, "under_voltage": 2}


@pytest.mark.asyncio
async def test_report(client, substation):
    await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 4, "registered_count": 1, "balance_group": "ОДПУ П2", "date": "2023-06-01"},
    )
    r = await client.get("/reports/substations", params={"balance_group": "ОДПУ П2", "date": "2023-06-30"})
    assert r.status_code == 200
    assert r.headers["X-Total-Count"] == "1"
    row = r.json()["rows"][0]
    assert row["registered_count"] == 1
    assert row["unregistered_count"] == 3


@pytest.mark.asyncio
async def test_rename_and_delete(client, substation):
    r = await client.put(f"/substations/{substation.id}", json={"name": "ТП-100"})
    assert r.status_code == 200
    assert r.json()["name"] == "ТП-100"

    r = await client.delete(f"/substations/{substation.id}")
    assert r.status_code == 204
    r = await client.get(f"/substations/{substation.id}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_writes_require_auth(anonymous_client, substation):
    r = await anonymous_client.post("/substations", json={"name": "ТП-5"})
    assert r.status_code == 401
    r = await anonymous_client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 1, "registered_count": 1, "balance_group": "Быт", "date": "2023-06-01"},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_list_substations_sort_range_and_ids(client, substation):
    for name in ("ТП-2", "ТП-3"):
        await client.post("/substations", json={"name": name})

    r = await client.get("/substations", params={"sort": '["name","DESC"]', "range": "[0,1]"})
    assert [s["name"] for s in r.json()] == ["ТП-3", "ТП-2"]
    assert r.headers["Content-Range"] == "substations 0-1/3"

    r = await client.get("/substations", params={"filter": f'{{"id": [{substation.id}]}}'})
    assert [s["name"] for s in r.json()] == ["ТП-1"]

    # malformed params fall back to defaults
    r = await client.get("/substations", params={"sort": "nope", "range": "x"})
    assert r.status_code == 200
    assert len(r.json()) == 3


@pytest.mark.asyncio
async def test_negative_count_returns_field_error(client, substation):
    r = await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": -1, "registered_count": 0, "balance_group": "Быт", "date": "2023-06-01"},
    )
    assert r.status_code == 422
    assert r.json()["field"] == "total_installed"


@pytest.mark.asyncio
async def test_correct_billing_meters(client, substation):
    await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 10, "registered_count": 4, "balance_group": "Быт", "date": "2023-06-01"},
    )
    body = {"total_installed": 8, "registered_count": 6, "balance_group": "Быт", "date": "2023-06-01"}
    r = await client.put(f"/substations/{substation.id}/billing-meters", json=body)
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "changed": True}

    r = await client.put(f"/substations/{substation.id}/billing-meters", json=body)
    assert r.json() == {"status": "unchanged", "changed": False}

    r = await client.get(f"/substations/{substation.id}/installations", params={"balance_group": "Быт", "date": "2023-06-30"})
    assert r.json()["monthly"]["cumulative"] == {"total_installed": 8, "registered_count": 6}

    r = await client.get(f"/substations/{substation.id}/logs")
    assert r.json()[0]["message"].startswith("Изменено: 8 6 Быт ")


@pytest.mark.asyncio
async def test_correct_billing_meters_defaults_to_today(client, substation):
    r = await client.put(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 3, "registered_count": 1, "balance_group": "ОДПУ Sims"},
    )
    assert r.status_code == 200
    assert await RegisteredMeters.exists(substation_id=substation.id, date=date.today())


@pytest.mark.asyncio
async def test_correct_billing_meters_rejects_bad_input(client, substation):
    r = await client.put(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 1, "registered_count": 2, "balance_group": "Быт", "date": "2023-06-01"},
    )
    assert r.status_code == 422
    assert r.json()["field"] == "registered_count"

    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    r = await client.put(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 1, "registered_count": 0, "balance_group": "Быт", "date": tomorrow},
    )
    assert r.json()["field"] == "date"


@pytest.mark.asyncio
async def test_put_technical_meters_overwrites(client, substation):
    await client.post(f"/substations/{substation.id}/technical-meters", json={"quantity": 5, "under_voltage": 2})

    r = await client.put(f"/substations/{substation.id}/technical-meters", json={"quantity": 2, "under_voltage": 1})
    assert r.status_code == 200
    assert r.json() == {"quantity": 2, "under_voltage": 1}

    r = await client.put(f"/substations/{substation.id}/technical-meters", json={"quantity": 1, "under_voltage": 2})
    assert r.status_code == 422
    assert r.json()["field"] == "under_voltage"

    r = await client.get("/technical-meters/totals")
    assert r.json() == {"quantity": 2, "under_voltage": 1}


@pytest.mark.asyncio
async def test_report_xlsx(client, substation):
    await client.post(
        f"/substations/{substation.id}/billing-meters",
        json={"total_installed": 4, "registered_count": 1, "balance_group": "Быт", "date": "2023-06-01"},
    )
    r = await client.get("/reports/substations.xlsx", params={"balance_group": "Быт", "date": "2023-06-30"})
    assert r.status_code == 200
    assert r.headers["content-type"] == XLSX_MEDIA_TYPE
    assert 'filename="substations_2023-06-30.xlsx"' in r.headers["content-disposition"]

    ws = load_workbook(io.BytesIO(r.content)).active
    assert ws["A1"].value == "ТП"
    assert [c.value for c in ws[2]] == ["ТП-1", 1, 3, 4, 1, 4, 1]
    assert ws["A3"].value == "Итого"
    assert ws["B3"].value == "=SUM(B2:B2)"
    assert ws.freeze_panes == "A2"
