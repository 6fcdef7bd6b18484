#!/usr/bin/env python3
"""Restructure ``redemptionCodes`` into ``redemptionCodes_MIGRATED``.

Reads the service account from ``functions/serviceAccountKey.json`` (or
``KOFFEE_SERVICE_ACCOUNT_PATH``). The original collection is left untouched.
"""
from __future__ import annotations

from koffee_tools.firestore.cli import migrate_redemption_codes


def main() -> None:
    raise SystemExit(migrate_redemption_codes())


if __name__ == "__main__":
    main()
