#!/usr/bin/env python3
"""Rename ``karmaBalance``/``karmaLegacy`` to ``karma``/``reputation`` on players.

Run once after deploying the code that reads the new field names.

Usage:
    python scripts/migrate_player_data.py path/to/serviceAccountKey.json [--batch-size N] [--dry-run]
"""
from __future__ import annotations

from koffee_tools.firestore.cli import migrate_player_data


def main() -> None:
    raise SystemExit(migrate_player_data())


if __name__ == "__main__":
    main()
