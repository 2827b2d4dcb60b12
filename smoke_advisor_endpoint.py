"""
PropLedger — Live /advisor Endpoint Check
===========================================
Streams an answer from a running server and prints chunks as they arrive:
    POST /api/v1/advisor
    → embed → match_properties → context → prompt → streamed completion

Usage:
    uvicorn app.main:app --reload            (in another terminal)
    python smoke_advisor_endpoint.py
    python smoke_advisor_endpoint.py "修繕費の目安は？"
"""

from __future__ import annotations
import sys
import time

import httpx

BASE_URL = "http://localhost:8000/api/v1"
TIMEOUT  = httpx.Timeout(120.0, connect=5.0)

QUESTION = sys.argv[1] if len(sys.argv) > 1 else "利回りとは？"

TRANSACTIONS = [
    {"category": "rent",   "amount": 100000},
    {"category": "rent",   "amount": 50000},
    {"category": "repair", "amount": 20000},
    {"amount": 3000},
]

SEP = "=" * 70

print(f"\n{SEP}")
print(f"  PropLedger — /advisor Streaming Check")
print(f"  Question : {QUESTION}")
print(f"{SEP}\n")

started = time.perf_counter()
first_chunk_at = None
n_chunks = 0
n_bytes = 0

with httpx.stream(
    "POST",
    f"{BASE_URL}/advisor",
    json={"question": QUESTION, "transactions": TRANSACTIONS},
    timeout=TIMEOUT,
) as resp:
    print(f"  HTTP Status : {resp.status_code}")
    print(f"  Request ID  : {resp.headers.get('x-request-id')}")
    print(f"{'─' * 70}\n")

    if resp.status_code != 200:
        resp.read()
        print(f"  ❌ Error response:\n{resp.text}")
        sys.exit(1)

    for text in resp.iter_text():
        if first_chunk_at is None:
            first_chunk_at = time.perf_counter() - started
        n_chunks += 1
        n_bytes += len(text.encode("utf-8"))
        print(text, end="", flush=True)

total = time.perf_counter() - started
print(f"\n\n{'─' * 70}")
print(f"  Chunks         : {n_chunks} ({n_bytes} bytes)")
print(f"  First chunk    : {first_chunk_at:.2f}s" if first_chunk_at else "  First chunk    : -")
print(f"  Total          : {total:.2f}s")
print(f"{SEP}\n")
