#!/usr/bin/env python3
"""Copy ``redemptionCodes_MIGRATED`` back to ``redemptionCodes`` under the same ids."""
from __future__ import annotations

from koffee_tools.firestore.cli import finalize_migration


def main() -> None:
    raise SystemExit(finalize_migration())


if __name__ == "__main__":
    main()
