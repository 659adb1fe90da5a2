"""CLI entry point for Holloway."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import __version__
from .config import AppConfig, _get_config_path, load_config


def _print_setup_guide(config_path: Path) -> None:
    print(
        "\nSet environment variables:\n"
        "  HOLLOWAY_API_KEY=your-api-key\n"
        "  HOLLOWAY_MODEL=gpt-4o\n"
        "  HOLLOWAY_BASE_URL=https://api.openai.com/v1   (optional)\n"
        f"\nOr create {config_path} with:\n\n"
        "ai:\n"
        '  api_key: "your-api-key"\n'
        '  model: "gpt-4o"\n',
        file=sys.stderr,
    )


def _load_config_or_exit(config_path: Path | None) -> AppConfig:
    path = config_path or _get_config_path()
    try:
        return load_config(path)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        _print_setup_guide(path)
        sys.exit(1)


def _configure_logging(config: AppConfig, verbose: bool) -> None:
    # The REPL owns the terminal, so logs go to a file.
    level = logging.DEBUG if verbose else getattr(logging, config.app.log_level, logging.WARNING)
    logging.basicConfig(
        filename=str(config.app.data_dir / "holloway.log"),
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _test_connection(config: AppConfig) -> None:
    from .services.ai_service import AIService

    ai_service = AIService(config.ai)

    print("Config:")
    print(f"  Endpoint: {config.ai.base_url}")
    print(f"  Model:    {config.ai.model}")
    print(f"  SSL:      {'enabled' if config.ai.verify_ssl else 'disabled'}")

    print("\nListing models...")
    try:
        valid, message, models = await ai_service.validate_connection()
    finally:
        await ai_service.close()
    if not valid:
        print(f"   FAILED - {message}")
        sys.exit(1)
    print(f"   OK - {len(models)} model(s) available")
    for m in models[:10]:
        print(f"     - {m}")


def main() -> None:
    parser = argparse.ArgumentParser(prog="holloway", description="Holloway - a terminal assistant with local tools")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml (default: ~/.holloway/config.yaml)")
    parser.add_argument("--verbose", action="store_true", help="Write debug logging to the log file")
    parser.add_argument("--test", action="store_true", help="Test connection settings and exit")
    args = parser.parse_args()

    config = _load_config_or_exit(args.config)
    _configure_logging(config, args.verbose)

    if args.test:
        asyncio.run(_test_connection(config))
        return

    from .cli.repl import run_cli

    sys.exit(asyncio.run(run_cli(config)))


if __name__ == "__main__":
    main()
