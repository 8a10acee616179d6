#!/usr/bin/env python3
"""Script to clear saved prompts and MCP server configs from the KV store.

Usage:
  python scripts/reset_kv.py [--force] [--only prompts|mcp-servers]
"""

import argparse
import sys
from pathlib import Path

# Add project root to sys.path so we can import chet packages
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from chet.api.records import MCP_SERVER_PREFIX, PROMPT_PREFIX
from chet.core.kv_store import KVStore

PREFIXES = {"prompts": PROMPT_PREFIX, "mcp-servers": MCP_SERVER_PREFIX}


def clear_prefix(kv: KVStore, label: str, prefix: str, force: bool):
    """Delete every key under prefix."""
    keys = kv.list_keys(prefix)
    print(f"Clearing {label} ({len(keys)} records)...")
    if not keys:
        return

    if not force:
        confirm = input(f"  This will delete all {label}. Continue? [y/N]: ")
        if confirm.lower() != 'y':
            print(f"  Skipping {label}.")
            return

    for key in keys:
        kv.delete(key)
    print(f"  Deleted {len(keys)} {label}.")


def main():
    parser = argparse.ArgumentParser(description="Clear C.H.E.T. KV records.")
    parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompts")
    parser.add_argument("--only", choices=list(PREFIXES), help="Only clear one record type")
    args = parser.parse_args()

    load_dotenv(project_root / ".env")
    kv = KVStore()

    for label, prefix in PREFIXES.items():
        if args.only in [label, None]:
            clear_prefix(kv, label, prefix, args.force)

    print("Done!")


if __name__ == "__main__":
    main()
