"""CLI entry point: ties together configuration, logging and the session prompt."""

from __future__ import annotations

import argparse
import logging

from workforce_session.config import DEFAULT_CONFIG_PATH, load_settings


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Workforce Session: sign in and manage an authenticated session",
    )
    parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to settings.yaml",
    )
    parser.add_argument(
        "--policies",
        default=None,
        help="Path to permissions.yaml (default: policies/permissions.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    settings = load_settings(args.config)

    from workforce_session.prompt.cli import run_cli

    run_cli(settings, policy_path=args.policies)


if __name__ == "__main__":
    main()
