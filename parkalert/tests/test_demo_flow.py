import pytest

from parkalert.core.settings import get_settings
from parkalert.identity.codes import hash_plate
from parkalert.scripts.demo_flow import run_scenario

pytestmark = pytest.mark.asyncio


async def test_demo_scenario_runs_against_app(client):
    result = await run_scenario(client, plate="06 DEMO 42")
    assert result["alert"]["status"] == "resolved"
    assert result["owner"]["score"] == 1015
    assert result["sender"]["score"] == 1010


async def test_demo_scenario_hashes_with_configured_salt(client):
    result = await run_scenario(client, plate="06 DEMO 43")
    h = hash_plate("06 DEMO 43", get_settings().PLATE_HASH_SALT)
    r = await client.get(f"/identifiers/{h}/owner")
    assert r.status_code == 200
    assert r.json()["accountId"] == result["alert"]["receiverAccountId"]
