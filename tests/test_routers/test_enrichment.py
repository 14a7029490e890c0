import asyncio

from contact_enrichment.schemas.contact import ContactInfo
from contact_enrichment.schemas.opportunity import Opportunity


def _app():
    from contact_enrichment.main import app

    return app


async def _wait_for_job(client, job_id: str) -> dict:
    for _ in range(100):
        resp = await client.get(f"/jobs/{job_id}")
        data = resp.json()
        if data["status"] in ("completed", "failed"):
            return data
        await asyncio.sleep(0.01)
    raise AssertionError(f"job {job_id} did not finish")


async def test_coverage_empty_store(client):
    resp = await client.get("/coverage")

    assert resp.status_code == 200
    data = resp.json()
    assert data["overall"] == {"total": 0, "with_contact": 0, "percentage": 0.0}


async def test_coverage_counts_stored_opportunities(client):
    store = _app().state.opportunity_store
    await store.upsert_opportunities([
        Opportunity(id=1, url="https://a.io", domain="a.io", contact_info=ContactInfo(emails=["hi@a.io"])),
        Opportunity(id=2, url="https://b.io", domain="b.io", is_premium=True),
    ])

    data = (await client.get("/coverage")).json()

    assert data["overall"]["percentage"] == 50.0
    assert data["premium"]["percentage"] == 0.0
    assert data["channels"]["emails"] == 1


async def test_sync_run_with_nothing_to_do(client):
    resp = await client.post("/enrichment/sync", json={"dry_run": True})

    assert resp.status_code == 200
    data = resp.json()
    assert data["processed"] == 0
    assert data["dry_run"] is True
    assert data["results"] == []


async def test_submit_job_and_poll(client):
    resp = await client.post("/enrichment")

    assert resp.status_code == 202
    body = resp.json()
    assert body["status"] == "pending"

    job = await _wait_for_job(client, body["job_id"])
    assert job["status"] == "completed"
    assert job["result"]["processed"] == 0


async def test_submit_while_running_is_rejected(client):
    active = _app().state.job_store.create_job(task_type="enrichment")

    resp = await client.post("/enrichment", json={"premium_only": True})

    assert resp.status_code == 200
    assert resp.json() == {
        "job_id": active.job_id,
        "status": "already_running",
        "message": "An enrichment run is already in progress",
    }


async def test_unknown_job(client):
    resp = await client.get("/jobs/does-not-exist")

    assert resp.status_code == 404
    assert resp.json() == {"detail": "Job not found"}
