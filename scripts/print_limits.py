#!/usr/bin/env python3
"""Print job, cache and API limits (from config). Run from repo root: python scripts/print_limits.py"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from app.core.config import settings


def main():
    """Print store backend, collections, cache TTL, input cap, rate limit and stale-job threshold."""
    print("Jobs, cache & API limits")
    print("------------------------")
    print(f"  STORE_BACKEND         = {settings.store_backend}")
    print(f"  JOBS_COLLECTION       = {settings.jobs_collection}")
    print(f"  CACHE_COLLECTION      = {settings.cache_collection}")
    print(f"  USAGE_COLLECTION      = {settings.usage_collection} (monthly AI quota counters)")
    print(f"  CACHE_TTL_SECONDS     = {settings.cache_ttl_seconds} s (default response cache ttl)")
    print(f"  MAX_INPUT_CHARS       = {settings.max_input_chars} (per string in a job payload)")
    print(f"  Rate limit            = {settings.rate_limit_requests} requests / {settings.rate_limit_window_seconds} s (per user)")
    print(f"  STALE_JOB_MINUTES     = {settings.stale_job_minutes} (cron marks older processing jobs failed)")
    print(f"  CRON_SECRET           = {'set' if settings.cron_secret.strip() else 'not set'}")
    print("")
    print("Env: STORE_BACKEND, CACHE_TTL_SECONDS, MAX_INPUT_CHARS, RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW_SECONDS, STALE_JOB_MINUTES (see .env.example)")


if __name__ == "__main__":
    main()
