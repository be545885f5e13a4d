#!/usr/bin/env python3
"""
Demo seed script — stores sample cards through the running API.

!! NOT FOR PRODUCTION !!
The PANs below are well-known test numbers. This script is intended ONLY
for local demos and frontend development.

Usage:
    # Generate a local encryption key for the server:
    python demo/seed.py --print-key

    # With the API server running on localhost:8000:
    python demo/seed.py

    # Reset the database:
    python demo/seed.py --reset

    # Custom server URL:
    python demo/seed.py --base-url http://localhost:9000
"""

import argparse
import asyncio
import os
import sys

import httpx

from cardvault.security import generate_encryption_key

BASE_URL = "http://localhost:8000"

# ---------------------------------------------------------------------------
# Demo cards
# ---------------------------------------------------------------------------

CARDS = [
    {"cardholder_name": "Alice Chen", "pan": "4111111111111111"},
    {"cardholder_name": "Bob Martinez", "pan": "5555555555554444"},
    {"cardholder_name": "Carol Nguyen", "pan": "4012888888881881"},
    {"cardholder_name": "Dave Johnson", "pan": "6011111111111117"},
    {"cardholder_name": "Erin Patel", "pan": "5105105105105100"},
    # Shares its last four with Alice's card
    {"cardholder_name": "Frank Okafor", "pan": "4242424242421111"},
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


async def store_card(client: httpx.AsyncClient, card: dict) -> dict:
    resp = await client.post(f"{BASE_URL}/api/cards", json=card)
    resp.raise_for_status()
    return resp.json()


async def search(client: httpx.AsyncClient, last_four: str) -> list[dict]:
    resp = await client.get(f"{BASE_URL}/api/cards", params={"last_four": last_four})
    resp.raise_for_status()
    return resp.json()


async def seed(base_url: str) -> None:
    global BASE_URL
    BASE_URL = base_url

    print("\n========================================")
    print("  DEMO SEED — NOT FOR PRODUCTION")
    print("========================================\n")

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            health = await client.get(f"{BASE_URL}/health")
            health.raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {BASE_URL}")
            print("  Start the server first: uvicorn cardvault.main:app --reload\n")
            sys.exit(1)
        log(f"Encryption backend: {health.json()['encryption_backend']}")

        print("\nStoring cards...")
        for card in CARDS:
            stored = await store_card(client, card)
            log(f"{stored['cardholder_name']:<14} {stored['masked_pan']}  ({stored['id']})")

        print("\nSearching for cards ending in 1111...")
        for match in await search(client, "1111"):
            log(f"{match['cardholder_name']:<14} {match['masked_pan']}")

    print()


def reset_database() -> None:
    """Delete the SQLite database file so the server recreates it on restart."""
    db_path = os.path.join(os.path.dirname(__file__), "..", "data", "cards.db")
    db_path = os.path.normpath(db_path)

    if os.path.exists(db_path):
        os.remove(db_path)
        print(f"\n  Deleted {db_path}")
        print("  Restart the server to recreate empty tables.\n")
    else:
        print(f"\n  No database found at {db_path}\n")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Demo seed script — NOT FOR PRODUCTION",
        epilog="Stores sample cards and runs a last-four search.",
    )
    parser.add_argument(
        "--base-url", default="http://localhost:8000",
        help="Base URL of the running API (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Delete the database file and exit (restart server to recreate)",
    )
    parser.add_argument(
        "--print-key", action="store_true",
        help="Print a fresh CARD_ENCRYPTION_KEY value and exit",
    )
    args = parser.parse_args()

    if args.print_key:
        print(f"CARD_ENCRYPTION_KEY={generate_encryption_key()}")
        return

    if args.reset:
        reset_database()
        return

    await seed(args.base_url)


if __name__ == "__main__":
    asyncio.run(main())
