#!/usr/bin/env python3
"""Merge the existing .env into the current .env.template."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from voxlink.env_upgrade import DEFAULT_ENV_PATH, DEFAULT_TEMPLATE_PATH, upgrade_env


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--template", type=Path, default=DEFAULT_TEMPLATE_PATH)
    parser.add_argument("--env", type=Path, default=DEFAULT_ENV_PATH)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO), format="%(message)s")
    upgrade_env(args.template, args.env)


if __name__ == "__main__":
    main()
