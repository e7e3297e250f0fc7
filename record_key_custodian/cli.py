#!/usr/bin/env python3
"""Command-line interface for the Record Key Custodian system."""

import argparse
import base64
import dataclasses
import json
import logging
import sys
from typing import Any, Optional

from record_key_custodian.config import (
    ENV_KEY_STORE_PATH,
    ENV_RECORD_STORE_PATH,
    CustodianConfig,
)
from record_key_custodian.exceptions import (
    AuthenticationFailure,
    EntropyError,
    FileOperationError,
    KeyNotFoundError,
    KeyRotationError,
    NotInitializedError,
    RecordNotFoundError,
    RotationCancelledError,
    RotationInProgressError,
    ValidationError,
)
from record_key_custodian.key_custodian import RecordKeyCustodian

# Most specific first: RotationCancelledError is a KeyRotationError
_ERROR_CODES = (
    (ValidationError, "validation_error"),
    (NotInitializedError, "not_initialized"),
    (KeyNotFoundError, "key_not_found"),
    (RecordNotFoundError, "record_not_found"),
    (AuthenticationFailure, "authentication_failure"),
    (EntropyError, "entropy_error"),
    (RotationInProgressError, "rotation_in_progress"),
    (RotationCancelledError, "cancelled"),
    (KeyRotationError, "rotation_error"),
    (FileOperationError, "file_error"),
)


class RecordKeyCustodianCLI:
    """Command-line interface for the Record Key Custodian system."""

    def __init__(self) -> None:
        """Initialize the CLI."""
        self._parser = self._create_parser()
        self._pretty = False

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser.

        Returns:
            Configured argument parser
        """
        parser = argparse.ArgumentParser(
            prog="record-key-custodian",
            description="Record Key Custodian - data-encryption key lifecycle for stored records",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog=f"""
Locations default to the {ENV_KEY_STORE_PATH} and {ENV_RECORD_STORE_PATH}
environment variables.

Examples:
  # Generate the data-encryption key (no-op if one exists)
  record-key-custodian -k /srv/keys -r /srv/records generate

  # Replace the active key without re-encrypting existing records
  record-key-custodian -k /srv/keys -r /srv/records generate --force

  # Rotate the key and re-encrypt all records (resumes after a crash)
  record-key-custodian -k /srv/keys -r /srv/records rotate --workers 8

  # Inspect keys and any unfinished rotation
  record-key-custodian -k /srv/keys -r /srv/records status

  # View the last 5 rotations
  record-key-custodian -k /srv/keys -r /srv/records history -l 5

  # Store and read a record
  record-key-custodian -k /srv/keys -r /srv/records put -i patient-42 -f chart.json
  record-key-custodian -k /srv/keys -r /srv/records get -i patient-42
            """,
        )

        # Global arguments
        parser.add_argument(
            "-k",
            "--key-store",
            help=f"Key store directory (default: ${ENV_KEY_STORE_PATH})",
        )
        parser.add_argument(
            "-r",
            "--record-store",
            help=f"Record store directory (default: ${ENV_RECORD_STORE_PATH})",
        )
        parser.add_argument(
            "--pretty",
            action="store_true",
            help="Pretty-print JSON outputs",
        )
        parser.add_argument(
            "-v",
            "--verbose",
            action="store_true",
            help="Log progress to stderr",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command",
            help="Available commands",
        )

        # Generate command
        generate_parser = subparsers.add_parser(
            "generate",
            help="Generate the data-encryption key",
        )
        generate_parser.add_argument(
            "--force",
            action="store_true",
            help="Generate and activate a new key even if one exists",
        )

        # Rotate command
        rotate_parser = subparsers.add_parser(
            "rotate",
            help="Rotate the key and re-encrypt all records",
        )
        rotate_parser.add_argument(
            "-w",
            "--workers",
            type=int,
            help="Worker threads for re-encryption (optional)",
        )

        # Status command
        subparsers.add_parser(
            "status",
            help="Show keys and any unfinished rotation",
        )

        # Rotation history command
        history_parser = subparsers.add_parser(
            "history",
            help="View rotation history",
        )
        history_parser.add_argument(
            "-l",
            "--limit",
            type=int,
            help="Maximum number of history entries to show (optional)",
        )

        # Put command
        put_parser = subparsers.add_parser(
            "put",
            help="Encrypt and store a record",
        )
        put_parser.add_argument(
            "-i",
            "--id",
            dest="record_id",
            required=True,
            help="Record id",
        )
        source = put_parser.add_mutually_exclusive_group(required=True)
        source.add_argument(
            "-t",
            "--text",
            help="Record contents as text",
        )
        source.add_argument(
            "-f",
            "--file",
            help="File holding the record contents",
        )

        # Get command
        get_parser = subparsers.add_parser(
            "get",
            help="Read and decrypt a record",
        )
        get_parser.add_argument(
            "-i",
            "--id",
            dest="record_id",
            required=True,
            help="Record id",
        )

        # List command
        subparsers.add_parser(
            "list",
            help="List record ids",
        )

        return parser

    def _get_custodian(self, args: argparse.Namespace, **overrides: Any) -> RecordKeyCustodian:
        """Get RecordKeyCustodian instance based on arguments."""
        config = CustodianConfig.from_env(
            key_store_path=args.key_store,
            record_store_path=args.record_store,
        )
        if overrides:
            try:
                config = dataclasses.replace(config, **overrides)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        return RecordKeyCustodian(config)

    def _print_json(self, payload: dict[str, Any]) -> None:
        """Print a JSON payload to stdout."""
        print(json.dumps(payload, indent=2 if self._pretty else None))

    def _print_error(self, *, message: str, code: str = "error", extra: dict[str, Any] | None = None) -> None:
        """Print a JSON error to stderr and exit non-zero."""
        error_obj = {
            "success": False,
            "error_code": code,
            "message": message,
        }
        if extra:
            error_obj["data"] = extra
        print(json.dumps(error_obj, indent=2), file=sys.stderr)
        sys.exit(1)

    def _handle_error(self, error: Exception) -> None:
        for error_type, code in _ERROR_CODES:
            if isinstance(error, error_type):
                self._print_error(message=str(error), code=code)
        self._print_error(message=str(error), code="unexpected_error")

    def _handle_generate(self, args: argparse.Namespace) -> None:
        """Handle generate command."""
        custodian = self._get_custodian(args)
        already_initialized = custodian.key_store.is_initialized()
        key = custodian.generate_key(force=args.force)

        self._print_json({
            "success": True,
            "command": "generate",
            "key_id": key.key_id,
            "created": args.force or not already_initialized,
        })

    def _handle_rotate(self, args: argparse.Namespace) -> None:
        """Handle rotate command."""
        overrides = {"max_workers": args.workers} if args.workers is not None else {}
        custodian = self._get_custodian(args, **overrides)

        try:
            result = custodian.rotate_key()
        except KeyboardInterrupt:
            self._print_error(
                message="Rotation interrupted; rerun rotate to resume",
                code="interrupted",
            )
            return

        payload = {"success": True, "command": "rotate"}
        payload.update(result.to_dict())
        self._print_json(payload)

    def _handle_status(self, args: argparse.Namespace) -> None:
        """Handle status command."""
        payload = {"success": True, "command": "status"}
        payload.update(self._get_custodian(args).status())
        self._print_json(payload)

    def _handle_history(self, args: argparse.Namespace) -> None:
        """Handle history command."""
        history = self._get_custodian(args).get_rotation_history(limit=args.limit)

        self._print_json({
            "success": True,
            "command": "history",
            "count": len(history),
            "history": [entry.to_dict() for entry in history],
        })

    def _handle_put(self, args: argparse.Namespace) -> None:
        """Handle put command."""
        if args.file:
            try:
                with open(args.file, "rb") as f:
                    plaintext = f.read()
            except OSError as e:
                raise ValidationError(f"Cannot read {args.file}: {e}") from e
        else:
            plaintext = args.text.encode("utf-8")

        key_id = self._get_custodian(args).put_record(args.record_id, plaintext)

        self._print_json({
            "success": True,
            "command": "put",
            "record_id": args.record_id,
            "key_id": key_id,
        })

    def _handle_get(self, args: argparse.Namespace) -> None:
        """Handle get command."""
        plaintext = self._get_custodian(args).get_record(args.record_id)

        try:
            data, encoding = plaintext.decode("utf-8"), "utf-8"
        except UnicodeDecodeError:
            data, encoding = base64.b64encode(plaintext).decode("ascii"), "base64"

        self._print_json({
            "success": True,
            "command": "get",
            "record_id": args.record_id,
            "encoding": encoding,
            "data": data,
        })

    def _handle_list(self, args: argparse.Namespace) -> None:
        """Handle list command."""
        record_ids = self._get_custodian(args).list_records()

        self._print_json({
            "success": True,
            "command": "list",
            "count": len(record_ids),
            "records": record_ids,
        })

    def run(self, args: Optional[list[str]] = None) -> None:
        """Run the CLI with given arguments."""
        handlers = {
            "generate": self._handle_generate,
            "rotate": self._handle_rotate,
            "status": self._handle_status,
            "history": self._handle_history,
            "put": self._handle_put,
            "get": self._handle_get,
            "list": self._handle_list,
        }

        try:
            parsed_args = self._parser.parse_args(args)
            self._pretty = bool(getattr(parsed_args, "pretty", False))
            logging.basicConfig(
                level=logging.INFO if parsed_args.verbose else logging.WARNING,
                format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            )

            if not parsed_args.command:
                self._print_error(message="No command specified", code="missing_command")

            handler = handlers.get(parsed_args.command)
            if handler is None:
                self._print_error(message=f"Unknown command: {parsed_args.command}", code="unknown_command")

            handler(parsed_args)

        except KeyboardInterrupt:
            self._print_error(message="Operation cancelled by user", code="cancelled")
        except Exception as e:
            self._handle_error(e)


def main() -> None:
    """Main entry point for the CLI."""
    cli = RecordKeyCustodianCLI()
    cli.run()


if __name__ == "__main__":
    main()
