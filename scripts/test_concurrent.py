#!/usr/bin/env python3
"""
Race N resumable-upload PATCH requests against one fresh session, all
claiming offset 0, and check that exactly one chunk is applied.

Expected: one 200 (the winner), N-1 409 (offset mismatch) and a final HEAD
reporting Upload-Offset equal to the chunk size. 429 means the /upload
endpoint limit kicked in; raise RATE_LIMIT_ENDPOINTS or disable it.

Usage:
  python scripts/test_concurrent.py [--url URL] [--concurrent N] [--chunk-size BYTES]
  Or set env: MOCK_SERVER_URL, CONCURRENT
"""

import argparse
import os
import sys
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import httpx

TUS_HEADERS = {"Tus-Resumable": "1.0.0"}
ERROR = -1


def create_upload(client: httpx.Client, length: int) -> str:
    r = client.post("/upload", headers={**TUS_HEADERS, "Upload-Length": str(length)})
    r.raise_for_status()
    return r.headers["Location"]


def patch_at_zero(client: httpx.Client, location: str, chunk: bytes) -> int:
    """Status code of one PATCH claiming offset 0, or ERROR."""
    try:
        r = client.patch(
            location,
            headers={
                **TUS_HEADERS,
                "Upload-Offset": "0",
                "Content-Type": "application/offset+octet-stream",
            },
            content=chunk,
        )
    except httpx.HTTPError:
        return ERROR
    return r.status_code


def race(client: httpx.Client, location: str, chunk: bytes, concurrent: int) -> Counter:
    with ThreadPoolExecutor(max_workers=concurrent) as executor:
        codes = executor.map(
            lambda _: patch_at_zero(client, location, chunk), range(concurrent)
        )
        return Counter(codes)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Race PATCH requests against one resumable upload session."
    )
    parser.add_argument(
        "--url",
        default=os.environ.get("MOCK_SERVER_URL", "http://localhost:8080"),
        help="Server base URL",
    )
    parser.add_argument(
        "--concurrent",
        type=int,
        default=int(os.environ.get("CONCURRENT", "20")),
        help="Number of parallel PATCH requests (default 20)",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=64,
        help="Bytes per chunk; the session length is twice this (default 64)",
    )
    args = parser.parse_args()

    with httpx.Client(base_url=args.url.rstrip("/"), timeout=30) as client:
        try:
            location = create_upload(client, args.chunk_size * 2)
        except httpx.HTTPError as e:
            print(f"Error: could not create upload session: {e}", file=sys.stderr)
            return 1

        print(f"Racing {args.concurrent} PATCH requests against {location}")
        codes = race(client, location, b"x" * args.chunk_size, args.concurrent)
        offset = client.head(location, headers=TUS_HEADERS).headers.get("Upload-Offset")

    for code, count in sorted(codes.items()):
        label = "ERR" if code == ERROR else f"HTTP {code}"
        print(f"{label}: {count}")
    print(f"Final Upload-Offset={offset} (expected {args.chunk_size})")

    if codes[200] != 1 or offset != str(args.chunk_size):
        print("FAIL: offset serialisation violated", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
