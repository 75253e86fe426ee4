"""
Walks one parking alert through the API end to end:
two accounts, a registered plate, send -> deliver -> acknowledge -> resolve,
then prints both reputation summaries.

    python -m parkalert.scripts.demo_flow --base-url http://127.0.0.1:8000 --plate "34 ABC 123"
"""
import argparse
import asyncio
import json
from typing import Any, Dict, Optional

import httpx

from parkalert.core.settings import get_settings
from parkalert.identity.codes import generate_ownership_key, hash_ownership_key, hash_plate


async def run_scenario(
    client: httpx.AsyncClient, plate: str = "34 ABC 123", salt: Optional[str] = None
) -> Dict[str, Any]:
    owner = (await client.post("/accounts")).raise_for_status().json()["accountId"]
    sender = (await client.post("/accounts")).raise_for_status().json()["accountId"]

    plate_hash = hash_plate(plate, get_settings().PLATE_HASH_SALT if salt is None else salt)
    proof = hash_ownership_key(generate_ownership_key())
    r = await client.post(
        "/identifiers",
        json={"identifierHash": plate_hash, "proofHash": proof},
        headers={"X-Account-Id": owner},
    )
    r.raise_for_status()

    r = await client.post(
        "/alerts",
        json={"targetIdentifierHash": plate_hash, "urgency": "high", "message": "Your car is blocking the gate"},
        headers={"X-Account-Id": sender},
    )
    r.raise_for_status()
    alert_id = r.json()["alert"]["alertId"]

    as_owner = {"X-Account-Id": owner}
    (await client.post(f"/alerts/{alert_id}/delivery", headers=as_owner)).raise_for_status()
    (await client.patch(f"/alerts/{alert_id}", json={"action": "acknowledge"}, headers=as_owner)).raise_for_status()
    r = await client.patch(
        f"/alerts/{alert_id}", json={"action": "resolve", "response": "Moving now"}, headers=as_owner
    )
    r.raise_for_status()

    summary = {"alert": r.json()}
    for name, account_id in (("owner", owner), ("sender", sender)):
        rep = await client.get(f"/accounts/{account_id}/reputation", headers={"X-Account-Id": account_id})
        summary[name] = rep.raise_for_status().json()
    return summary


async def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--base-url", default="http://127.0.0.1:8000")
    ap.add_argument("--plate", default="34 ABC 123")
    ap.add_argument("--salt", default=None, help="defaults to PLATE_HASH_SALT")
    args = ap.parse_args()
    async with httpx.AsyncClient(base_url=args.base_url, timeout=5.0) as client:
        result = await run_scenario(client, plate=args.plate, salt=args.salt)
    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    asyncio.run(main())
