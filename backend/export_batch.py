"""
Batch Export Script - downloads a batch export from the running API.

Fetches the CSV or PDF export of one (title, date) batch and writes it to
the current directory under the server-suggested file name.

Usage:
    python export_batch.py "Spring Eval" 2024-03-01                  # CSV, default URL
    python export_batch.py "Spring Eval" 2024-03-01 --pdf            # PDF
    python export_batch.py "Spring Eval" 2024-03-01 --api-url http://backend:8000
"""

import argparse
import os
import re
import sys

import httpx


def filename_from_response(resp: httpx.Response, fallback: str) -> str:
    disposition = resp.headers.get("content-disposition", "")
    match = re.search(r'filename="([^"]+)"', disposition)
    return match.group(1) if match else fallback


def main():
    parser = argparse.ArgumentParser(description="Download a batch assessment export")
    parser.add_argument("title", help="Assessment title")
    parser.add_argument("date", help="Assessment date (YYYY-MM-DD)")
    parser.add_argument("--pdf", action="store_true", help="Download the PDF instead of CSV")
    parser.add_argument("--api-url", default=os.getenv("API_URL", "http://localhost:8000"))
    args = parser.parse_args()

    extension = "pdf" if args.pdf else "csv"
    url = f"{args.api_url}/api/batches/export.{extension}"

    print(f"Requesting {extension.upper()} export of '{args.title}' ({args.date}) from {url}")

    try:
        with httpx.Client(timeout=60.0) as client:
            resp = client.get(url, params={"title": args.title, "date": args.date})
            resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        print(f"HTTP Error {e.response.status_code}: {e.response.text}")
        sys.exit(1)
    except httpx.HTTPError as e:
        print(f"Request failed: {e}")
        sys.exit(1)

    filename = filename_from_response(resp, f"batch_export.{extension}")
    with open(filename, "wb") as f:
        f.write(resp.content)

    print(f"Saved {len(resp.content)} bytes to {filename}")
    if args.pdf:
        print(f"Page orientation: {resp.headers.get('x-page-orientation', 'unknown')}")


if __name__ == "__main__":
    main()
