#!/usr/bin/env python3
"""
AssetLogix Health Check Script
==============================
Infrastructure health verification for a deployed backend.

Checks:
1. FastAPI Backend (/health endpoint)
2. Database connectivity (DATABASE_URL)
3. Upload directory is writable (UPLOAD_DIR)

Output:
    - "GREEN" if ALL checks pass < 200ms
    - "YELLOW" if all pass but some > 200ms
    - "RED" if any check fails
"""

import asyncio
import os
import sys
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "apps" / "backend"))

# Configuration
API_URL = os.getenv("API_URL", "http://localhost:8000")

# Threshold for "fast" response (ms)
FAST_THRESHOLD_MS = 200


@dataclass
class HealthResult:
    """Result of a health check."""
    service: str
    healthy: bool
    latency_ms: float
    error: Optional[str] = None


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def check_fastapi() -> HealthResult:
    """Check FastAPI backend health endpoint."""
    start = time.perf_counter()
    try:
        resp = httpx.get(f"{API_URL}/health", timeout=5.0)
    except httpx.HTTPError as e:
        return HealthResult("FastAPI", False, _elapsed_ms(start), str(e))

    if resp.status_code == 200:
        return HealthResult("FastAPI", True, _elapsed_ms(start))
    return HealthResult("FastAPI", False, _elapsed_ms(start), f"HTTP {resp.status_code}")


def check_database() -> HealthResult:
    """Ping the configured database directly."""
    from database.session import dispose_engine, ping_database
    from exceptions import AssetLogixBaseException

    async def _ping() -> None:
        try:
            await ping_database()
        finally:
            await dispose_engine()

    start = time.perf_counter()
    try:
        asyncio.run(_ping())
    except AssetLogixBaseException as e:
        return HealthResult("Database", False, _elapsed_ms(start), str(e.original_error or e.message))
    return HealthResult("Database", True, _elapsed_ms(start))


def check_upload_dir() -> HealthResult:
    """Write and remove a scratch file in the upload directory."""
    from services.storage import ensure_upload_dirs

    start = time.perf_counter()
    try:
        root = ensure_upload_dirs()
        scratch = root / f".healthcheck-{uuid.uuid4().hex}"
        scratch.write_bytes(b"ok")
        scratch.unlink()
    except OSError as e:
        return HealthResult("Uploads", False, _elapsed_ms(start), str(e))
    return HealthResult("Uploads", True, _elapsed_ms(start))


def format_result(result: HealthResult) -> str:
    """Format a health result for display."""
    status = "✓" if result.healthy else "✗"
    color = "\033[92m" if result.healthy else "\033[91m"
    reset = "\033[0m"

    latency_str = f"{result.latency_ms:.1f}ms"
    if result.latency_ms > FAST_THRESHOLD_MS:
        latency_str = f"\033[93m{latency_str}\033[0m"  # Yellow for slow

    line = f"  {color}{status}{reset} {result.service}: {latency_str}"
    if result.error:
        line += f" ({result.error})"

    return line


def main():
    """Run all health checks and report status."""
    print("\n" + "=" * 50)
    print("  ASSETLOGIX HEALTH CHECK")
    print("=" * 50 + "\n")

    print("Checking services...\n")

    results = [
        check_fastapi(),
        check_database(),
        check_upload_dir(),
    ]

    for result in results:
        print(format_result(result))

    print()

    all_healthy = all(r.healthy for r in results)
    all_fast = all(r.latency_ms < FAST_THRESHOLD_MS for r in results)

    if all_healthy and all_fast:
        print("\033[92m" + "=" * 50)
        print("  STATUS: GREEN")
        print("  All checks passed in < 200ms")
        print("=" * 50 + "\033[0m\n")
        return 0

    elif all_healthy:
        print("\033[93m" + "=" * 50)
        print("  STATUS: YELLOW")
        print("  All checks passed but some took > 200ms")
        print("=" * 50 + "\033[0m\n")
        return 0

    else:
        failed = [r.service for r in results if not r.healthy]
        print("\033[91m" + "=" * 50)
        print("  STATUS: RED")
        print(f"  Failed checks: {', '.join(failed)}")
        print("=" * 50 + "\033[0m\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
