#!/usr/bin/env python
"""
Example script for calling the KeyScan Matching API.

This script sends a described key and a small inventory to the /match
endpoint and prints the decision with its score breakdown.
"""

import asyncio
import json
import sys
from typing import Any, Dict, Optional

import httpx

API_URL = "http://localhost:8000/match"

# Sample scan: the query should resolve to "front-door"
SAMPLE_REQUEST = {
    "strategy": "v6",
    "query": {
        "attributes": {
            "unique_mark": True,
            "key_color": "brass",
            "bow_shape": "hexagonal",
            "number_of_cuts": 5,
            "has_bow_text": True,
            "blade_profile": "single-sided",
            "groove_count": 2
        },
        "confidence": 0.91
    },
    "inventory": [
        {
            "key_id": "front-door",
            "signature": {
                "attributes": {
                    "unique_mark": True,
                    "key_color": "brass",
                    "bow_shape": "rectangular",
                    "number_of_cuts": 5,
                    "has_bow_text": True,
                    "blade_profile": "single-sided",
                    "groove_count": 2
                }
            }
        },
        {
            "key_id": "mailbox",
            "signature": {
                "attributes": {
                    "unique_mark": False,
                    "key_color": "silver",
                    "bow_shape": "round",
                    "number_of_cuts": 4,
                    "has_bow_text": False,
                    "blade_profile": "single-sided",
                    "groove_count": 1
                }
            }
        },
        {
            "key_id": "garage",
            "signature": {
                "attributes": {
                    "unique_mark": False,
                    "key_color": "brass",
                    "bow_shape": "rectangular-wide",
                    "number_of_cuts": 6,
                    "has_bow_text": None,
                    "blade_profile": "double-sided",
                    "groove_count": 2
                }
            }
        }
    ]
}


async def match_key(request_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Call the API to match a key against an inventory.

    Args:
        request_data: The request payload with query signature and inventory

    Returns:
        Dict[str, Any]: The API response with the match outcome
    """
    async with httpx.AsyncClient() as client:
        response = await client.post(API_URL, json=request_data, timeout=10.0)

        if response.status_code != 200:
            print(f"Error: {response.status_code}")
            print(response.text)
            return {}

        return response.json()


def display_results(results: Dict[str, Any]) -> None:
    """Print the match outcome in a readable format."""
    if not results:
        return

    print("\n====== KEYSCAN MATCH ======\n")
    print(f"Strategy:  {results.get('strategy')}")
    print(f"Decision:  {results.get('decision')}")
    print(f"Closest:   {results.get('best_candidate_id') or 'none'}")
    if results.get("best_score") is not None:
        print(f"Score:     {results['best_score']:.3f}  (margin {results.get('margin', 0.0):.3f})")

    breakdown = results.get("breakdown") or {}
    if breakdown:
        print(f"\nHint: {breakdown.get('match_type_hint')}")
        print("ATTRIBUTES:")
        for name, score in breakdown.get("per_attribute", {}).items():
            print(f"- {name:<16} {score['similarity']:.2f}  weight={score['weight']:.2f}  ({score['reason']})")

    print("\nRANKING:")
    for row in results.get("ranking", []):
        print(f"- {row['key_id']:<16} {row['score']:.3f}")

    for skipped in results.get("skipped", []):
        print(f"Skipped {skipped['key_id']}: {skipped['reason']}")


async def main(request_data: Optional[Dict[str, Any]] = None) -> None:
    """
    Main function to run the example.

    Args:
        request_data: Optional custom request data
    """
    if request_data is None:
        request_data = SAMPLE_REQUEST

    print("Calling KeyScan Matching API...")
    print(f"Searching {len(request_data.get('inventory', []))} inventory keys")

    results = await match_key(request_data)
    display_results(results)


if __name__ == "__main__":
    if len(sys.argv) > 1:
        with open(sys.argv[1], "r") as f:
            custom_data = json.load(f)
        asyncio.run(main(custom_data))
    else:
        asyncio.run(main())
