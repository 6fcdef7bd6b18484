#!/usr/bin/env python3
from __future__ import annotations

from koffee_tools.firestore.cli import update_player_titles


def main() -> None:
    raise SystemExit(update_player_titles())


if __name__ == "__main__":
    main()
