#!/usr/bin/env python3
"""
Albion Battleboards CLI Entry Point

Run with: python -m albion_bb <command> [args]
"""

import argparse
import json
import sys

from .core.formatters import get_utc_timestamp


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent, default=str))


def output_error(message: str, exit_code: int = 1, **kwargs) -> None:
    """Print error JSON and exit."""
    error_data = {
        "error": kwargs.pop("error_type", "error"),
        "message": message,
        "query_timestamp": get_utc_timestamp(),
    }
    error_data.update(kwargs)
    output_json(error_data)
    sys.exit(exit_code)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="albion-bb",
        description="Albion Online battleboard ingestion",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from .commands import battleboards

    battleboards.register_parsers(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        result = args.func(args)

        if isinstance(result, dict) and result:
            output_json(result)

            # Return non-zero exit code if result contains error
            if "error" in result:
                return 1

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        to_dict = getattr(e, "to_dict", None)
        details = to_dict() if callable(to_dict) else {}
        details.pop("error", None)
        details.pop("message", None)
        output_error(str(e), error_type="command_error", command=args.command, **details)
        return 1


if __name__ == "__main__":
    sys.exit(main())
