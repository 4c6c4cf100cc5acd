#!/usr/bin/env python3
"""
recordserver CLI - Main entry point.

Usage:
    recordserver serve [--root .] [--env development] [--host H] [--port P]
    recordserver schema [--schema schema.yaml] [--graphql]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from .core.errors import RecordServerError
from .core.schema import Schema
from .config import AppConfig, build_server_settings, load_config


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the server with uvicorn."""
    import uvicorn

    from .api.app import create_app

    try:
        config = load_config(args.root, args.env)
        if args.host:
            config = config.model_copy(update={"host": args.host})
        if args.port:
            config = config.model_copy(update={"port": args.port})
        configure_logging(config.log_level)
        app = create_app(build_server_settings(config))
    except RecordServerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())
    return 0


def cmd_schema(args: argparse.Namespace) -> int:
    """Print the schema document or its GraphQL SDL."""
    from graphql import print_schema

    from .gql.schema import build_graphql_schema

    schema_file = args.schema or AppConfig().schema_file
    try:
        schema = Schema.from_file(schema_file)
        if args.graphql:
            print(print_schema(build_graphql_schema(schema)))
        else:
            document = schema.to_dict()
            document["inflections"] = schema.inflections()
            print(json.dumps(document, indent=2))
    except RecordServerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="recordserver",
        description="recordserver - JSON:API and GraphQL for a record schema",
    )
    parser.add_argument("--version", action="version", version="%(prog)s 0.1.0")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the server")
    serve_parser.add_argument("--root", default=".", help="Project root containing config/")
    serve_parser.add_argument("--env", help="Environment name (default: $RECORDSERVER_ENV or development)")
    serve_parser.add_argument("--host", help="Bind host")
    serve_parser.add_argument("--port", "-p", type=int, help="Bind port")

    # schema
    schema_parser = subparsers.add_parser("schema", help="Print the schema")
    schema_parser.add_argument("--schema", "-s", help="Schema file (default: $RECORDSERVER_SCHEMA_FILE)")
    schema_parser.add_argument("--graphql", action="store_true", help="Print GraphQL SDL instead of JSON")

    return parser


def app(args: Optional[List[str]] = None) -> int:
    """Main CLI application."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 0

    commands = {
        "serve": cmd_serve,
        "schema": cmd_schema,
    }

    handler = commands.get(parsed.command)
    if handler:
        return handler(parsed)

    parser.print_help()
    return 1


def main() -> None:
    """Entry point for CLI."""
    sys.exit(app())


if __name__ == "__main__":
    main()
