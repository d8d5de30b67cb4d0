#!/usr/bin/env python3
"""Dump everything the garage endpoint returns.

Loads the garage, then prints every device, base and connectivity pack
with both the cached attribute values **and** the raw API JSON so you can
spot fields that aren't parsed yet.

Usage
-----
Set environment variables and run::

    export STIGA_ACCESS_TOKEN="..."
    python scripts/dump_garage.py

Options::

    --json               Output as machine-readable JSON
    --output FILE        Write output to FILE instead of stdout
    --verbose            Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pystiga import Entity, StigaClient, StigaConfig  # noqa: E402

# ── helpers ──────────────────────────────────────────────────


def _section(title: str) -> str:
    line = "=" * 60
    return f"\n{line}\n  {title}\n{line}"


async def _dump_entity(entity: Entity, out: list[str]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    out.append(f"\n  {entity!r}")
    for key in entity.schema.registry_keys:
        reading = await entity.get(key)
        data[key] = reading.value
        out.append(f"    {key}: {reading.value!r}")
    return data


async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Dump the STIGA garage for debugging / development.",
    )
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--output", "-o", help="Write output to FILE instead of stdout")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    config = StigaConfig.from_env()
    if not config.access_token:
        print("STIGA_ACCESS_TOKEN is not set", file=sys.stderr)
        sys.exit(2)

    result: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "devices": [],
        "bases": [],
        "packs": [],
    }
    out: list[str] = [_section("pystiga dump_garage"), f"  time      : {result['timestamp']}"]

    async with StigaClient(config) as client:
        if not await client.check_connection():
            print("Access token rejected by /api/user", file=sys.stderr)
            sys.exit(1)
        if not await client.garage.reload():
            print("Garage could not be loaded (see log)", file=sys.stderr)
            sys.exit(1)
        garage = client.garage
        snapshot = garage.snapshot

        out.append(_section("DEVICES"))
        for device in garage.get_devices():
            data = await _dump_entity(device, out)
            bases = [base.mac_address for base in garage.get_bases_for_device(device)]
            out.append(f"    bases: {bases}")
            raw = next((view.raw for view in snapshot.devices if view.mac_address == device.mac_address), {})
            result["devices"].append({"info": data, "bases": bases, "raw": raw})

        out.append(_section("BASES"))
        for base in garage.get_bases():
            data = await _dump_entity(base, out)
            raw = next((view.raw for view in snapshot.bases.values() if view.mac_address == base.mac_address), {})
            result["bases"].append({"info": data, "raw": raw})

        out.append(_section("PACKS"))
        for pack in garage.get_packs():
            out.append(f"\n  {pack.uuid}: status={pack.status} active={pack.is_active}")
            out.append(f"    hours: {pack.work_hours_used}/{pack.work_hours_total}")
            out.append(f"    valid: {pack.valid_from} -> {pack.valid_to}")
            result["packs"].append(pack.model_dump(mode="json"))

    payload = json.dumps(result, indent=2, default=str, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"JSON written to {args.output}", file=sys.stderr)
    elif args.json_mode:
        print(payload)
    else:
        print("\n".join(out))


if __name__ == "__main__":
    asyncio.run(main())
