#!/usr/bin/env python3
"""
tmbridge Terminology Loader

Loads a FHIR Bundle of CodeSystems/ConceptMaps/ValueSets and/or the NAMASTE CSV
export into the configured store, or posts the Bundle resources to a
running API.

Usage:
    python scripts/load_terminology.py

    # Or with options
    python scripts/load_terminology.py --bundle my_bundle.json --csv namaste_csv.csv
    python scripts/load_terminology.py --api-url http://localhost:8000
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import httpx

from tmbridge.config import get_settings
from tmbridge.errors import TerminologyError
from tmbridge.observability.logging import configure_logging
from tmbridge.store.clients import close_store, init_postgres
from tmbridge.store.loader import SAMPLE_BUNDLE_PATH, import_namaste_csv, load_bundle_file


async def load_directly(bundle_path: Path | None, csv_path: Path | None) -> dict:
    """Load into the PostgreSQL store configured by POSTGRES_* settings."""
    settings = get_settings()
    store = await init_postgres(settings)
    stats: dict = {}
    try:
        if bundle_path:
            stats["bundle"] = await load_bundle_file(store, bundle_path)
        if csv_path:
            stats["csv"] = await import_namaste_csv(store, csv_path)
    finally:
        await close_store(store)
    return stats


async def load_via_api(bundle_path: Path, api_url: str) -> dict:
    """POST each CodeSystem, then each ConceptMap, then each ValueSet, to the API."""
    with open(bundle_path, encoding="utf-8") as f:
        bundle = json.load(f)

    resources = [entry["resource"] for entry in bundle.get("entry", [])]
    created = {"CodeSystem": 0, "ConceptMap": 0, "ValueSet": 0}
    ordered = [
        r for resource_type in created
        for r in resources if r.get("resourceType") == resource_type
    ]
    async with httpx.AsyncClient(base_url=api_url, timeout=30.0) as client:
        for resource in ordered:
            resource_type = resource["resourceType"]
            response = await client.post(f"/fhir/{resource_type}", json=resource)
            if response.status_code == 409:
                print(f"  {resource_type} {resource['url']} already exists, skipping")
                continue
            response.raise_for_status()
            created[resource_type] += 1
    return created


async def main():
    parser = argparse.ArgumentParser(description="Load terminology data into tmbridge")
    parser.add_argument("--bundle", type=str, help="FHIR Bundle JSON (default: packaged sample)")
    parser.add_argument("--csv", type=str, help="NAMASTE CSV export to import")
    parser.add_argument("--no-bundle", action="store_true", help="Skip the Bundle, import CSV only")
    parser.add_argument("--api-url", type=str, help="Post resources to a running API instead")

    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.app.log_level, json_logs=False)

    bundle_path = None if args.no_bundle else Path(args.bundle or SAMPLE_BUNDLE_PATH)
    csv_path = Path(args.csv) if args.csv else None

    if args.api_url:
        if bundle_path is None:
            print("Error: --api-url loads a Bundle; CSV import requires direct store access")
            return
        print(f"Loading {bundle_path} via API at {args.api_url}...")
        try:
            result = await load_via_api(bundle_path, args.api_url)
        except httpx.ConnectError:
            print(f"\nError: Could not connect to API at {args.api_url}")
            print("Make sure the API server is running: python -m tmbridge.api.main")
            return
        except httpx.HTTPStatusError as e:
            print(f"Error: {e.response.status_code} {e.response.text}")
            return
    else:
        print("Loading directly into PostgreSQL...")
        try:
            result = await load_directly(bundle_path, csv_path)
        except TerminologyError as e:
            print(f"Error: {e.message}")
            return

    print("\nTerminology loaded successfully!")
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
