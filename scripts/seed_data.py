"""
Seed Data Script

This script populates a project with sample data for demonstration, through
the running API. It creates entities describing a small service landscape,
tags them, and connects them with relations.

Usage:
    python -m scripts.seed_data
    python -m scripts.seed_data --project demo --base-url http://localhost:8000

This demonstrates:
1. How entities, relations and tags are created
2. Exact search vs fuzzy search (try "paymnt" in fuzzy mode)
3. Tag filters and paginated search
"""

import argparse
from typing import Optional

import requests

# Base URL of the running API
BASE_URL = "http://localhost:8000"


# =============================================================================
# Sample Dataset
# =============================================================================

SAMPLE_ENTITIES = [
    {
        "name": "checkout-web",
        "entityType": "service",
        "observations": ["React storefront for the checkout flow", "Deployed on the edge CDN"],
        "tags": ["frontend", "critical"]
    },
    {
        "name": "payments-api",
        "entityType": "service",
        "observations": ["Authorizes and captures card payments", "Written in Go"],
        "tags": ["backend", "critical", "pci"]
    },
    {
        "name": "ledger-db",
        "entityType": "database",
        "observations": ["PostgreSQL cluster holding double-entry ledger rows"],
        "tags": ["storage", "pci"]
    },
    {
        "name": "fraud-scoring",
        "entityType": "service",
        "observations": ["Scores each payment attempt for fraud risk", "Python, scikit-learn model"],
        "tags": ["backend", "ml"]
    },
    {
        "name": "notifications",
        "entityType": "service",
        "observations": ["Sends receipts by email and SMS"],
        "tags": ["backend"]
    },
    {
        "name": "Alice_Chen",
        "entityType": "person",
        "observations": ["Tech lead of the payments team", "On call for payments-api"],
        "tags": ["team-payments"]
    },
    {
        "name": "Bob_Martinez",
        "entityType": "person",
        "observations": ["Data scientist maintaining the fraud model"],
        "tags": ["team-risk"]
    },
    {
        "name": "pci-audit-2024",
        "entityType": "project",
        "observations": ["Annual PCI DSS audit covering payments-api and ledger-db"],
        "tags": ["compliance", "pci"]
    },
]

SAMPLE_RELATIONS = [
    {"from": "checkout-web", "to": "payments-api", "relationType": "calls"},
    {"from": "payments-api", "to": "ledger-db", "relationType": "writes_to"},
    {"from": "payments-api", "to": "fraud-scoring", "relationType": "calls"},
    {"from": "payments-api", "to": "notifications", "relationType": "publishes_to"},
    {"from": "Alice_Chen", "to": "payments-api", "relationType": "owns"},
    {"from": "Bob_Martinez", "to": "fraud-scoring", "relationType": "owns"},
    {"from": "pci-audit-2024", "to": "payments-api", "relationType": "covers"},
    {"from": "pci-audit-2024", "to": "ledger-db", "relationType": "covers"},
]


# =============================================================================
# Seeding Functions
# =============================================================================

def post(path: str, payload) -> Optional[requests.Response]:
    """POST a JSON payload to the API, returning None if the server is unreachable."""
    try:
        return requests.post(f"{BASE_URL}{path}", json=payload)
    except requests.exceptions.ConnectionError:
        print(f"Connection error - is the server running at {BASE_URL}?")
        return None


def seed_project(project: str) -> None:
    """Seed a project with the sample entities and relations."""
    print("=" * 60)
    print(f"kgraph - Seeding project '{project}' with sample data")
    print("=" * 60)

    # Check if server is running
    try:
        response = requests.get(f"{BASE_URL}/health")
        if response.status_code != 200:
            print(f"Server health check failed: {response.text}")
            return
        print("Server is healthy, starting seed...")
    except requests.exceptions.ConnectionError:
        print(f"Cannot connect to server at {BASE_URL}")
        print("Please start the server first: uvicorn kgraph.main:app --reload")
        return

    print("\nCreating entities...")
    response = post(f"/projects/{project}/entities", SAMPLE_ENTITIES)
    if response is None:
        return
    if response.status_code != 201:
        print(f"Failed to create entities: {response.text}")
        return
    created = response.json()
    for entity in created:
        print(f"  ✓ Created: {entity['name']} ({entity['entityType']})")
    print(f"\nEntities created: {len(created)}/{len(SAMPLE_ENTITIES)}")

    print("\nCreating relations...")
    response = post(f"/projects/{project}/relations", SAMPLE_RELATIONS)
    if response is None:
        return
    if response.status_code != 201:
        print(f"Failed to create relations: {response.text}")
        return
    for relation in response.json():
        print(f"  ✓ Created: {relation['from']} --[{relation['relationType']}]--> {relation['to']}")

    print("\n" + "=" * 60)
    print("Seeding Complete!")
    print("=" * 60)


def run_example_searches(project: str) -> None:
    """Run some example searches to demonstrate the system."""
    print("\n" + "=" * 60)
    print("Running Example Searches")
    print("=" * 60)

    examples = [
        ("Exact search: 'payment'", {"query": "payment"}),
        ("Fuzzy search: 'paymnt'", {"query": "paymnt", "searchMode": "fuzzy", "fuzzyThreshold": 0.6}),
        ("Batch search: ['ledger', 'fraud']", {"query": ["ledger", "fraud"]}),
        ("Tag search: pci AND critical", {"exactTags": ["pci", "critical"], "tagMatchMode": "all"}),
    ]
    for i, (title, body) in enumerate(examples, start=1):
        print(f"\n{i}. {title}")
        response = post(f"/projects/{project}/search", body)
        if response is None:
            return
        if response.status_code == 200:
            result = response.json()
            for entity in result["entities"]:
                print(f"   - {entity['name']} [{entity['entityType']}]")
            print(f"   ({len(result['relations'])} relations among results)")
        else:
            print(f"   Failed: {response.text}")

    print("\n5. Paginated search: every entity, 3 per page")
    page = 0
    while True:
        response = post(f"/projects/{project}/search/paginated", {"query": "", "page": page, "pageSize": 3})
        if response is None or response.status_code != 200:
            break
        result = response.json()
        names = ", ".join(entity["name"] for entity in result["entities"])
        info = result["pagination"]
        print(f"   page {info['currentPage'] + 1}/{info['totalPages']}: {names}")
        if not info["hasNextPage"]:
            break
        page += 1


def main():
    global BASE_URL

    parser = argparse.ArgumentParser(description="Seed a kgraph project with sample data")
    parser.add_argument("--project", "-p", default="demo", help="Project to seed (default: demo)")
    parser.add_argument("--base-url", default=BASE_URL, help=f"API base URL (default: {BASE_URL})")
    parser.add_argument("--skip-searches", action="store_true", help="Do not run the example searches")
    args = parser.parse_args()

    BASE_URL = args.base_url.rstrip("/")
    seed_project(args.project)
    if not args.skip_searches:
        run_example_searches(args.project)


if __name__ == "__main__":
    main()
