"""
Student Loader Script - registers students from a JSON file via the API.

Reads a list of student objects (Name, MobileNo, District, State, Paid,
FeeAmount) and POSTs each one to /student. Numbers already in the sheet are
updated rather than duplicated by the API itself.

Usage:
    python load_students.py students.json                        # Uses default URL
    python load_students.py students.json http://localhost:4001   # Custom API URL
"""

import json
import os
import sys

import httpx


def load_students(client: httpx.Client, api_url: str, students: list) -> dict:
    """Post every student; returns counts of created, updated and failed."""
    summary = {"created": 0, "updated": 0, "failed": 0, "errors": []}
    for student in students:
        resp = client.post(f"{api_url}/student", json=student)
        if resp.status_code == 201:
            summary["created"] += 1
        elif resp.status_code == 200:
            summary["updated"] += 1
        else:
            summary["failed"] += 1
            try:
                message = resp.json().get("message", resp.text)
            except ValueError:
                message = resp.text
            summary["errors"].append({
                "MobileNo": student.get("MobileNo"),
                "status": resp.status_code,
                "message": message,
            })
    return summary


def main():
    if len(sys.argv) < 2:
        print("Usage: python load_students.py <students.json> [api_url]")
        sys.exit(1)

    data_file = sys.argv[1]
    api_url = sys.argv[2] if len(sys.argv) > 2 else os.getenv("API_URL", "http://localhost:4001")

    if not os.path.exists(data_file):
        print(f"Error: Could not find {data_file}")
        sys.exit(1)

    print(f"Loading data from: {data_file}")
    with open(data_file, "r", encoding="utf-8") as f:
        students = json.load(f)

    print(f"Found {len(students)} students to register")
    print(f"Sending to: {api_url}/student")
    print()

    with httpx.Client(timeout=30.0) as client:
        result = load_students(client, api_url.rstrip("/"), students)

    print("=" * 60)
    print("LOAD SUMMARY")
    print("=" * 60)
    print(f"  Created:  {result['created']}")
    print(f"  Updated:  {result['updated']}")
    print(f"  Failed:   {result['failed']}")
    for error in result["errors"]:
        print(f"    {error['MobileNo']}: HTTP {error['status']} - {error['message']}")
    print("=" * 60)

    if result["failed"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
