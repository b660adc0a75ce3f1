"""
Obligation Compliance Check — command-line front end for validate_transaction.

Reads one JSON document describing a proposed obligation and the account it
draws on, runs every applicable compliance check and prints the result.

Input document:
    {
      "transaction":   {...Obligation fields...},
      "account":       {...BudgetAccount fields...},      (optional)
      "apportionment": {...ApportionmentRecord fields...} (optional)
    }

Usage:
    python validate_obligation.py obligation.json
    python validate_obligation.py obligation.json --as-of 2024-06-15
    python validate_obligation.py obligation.json --json          # Result as JSON
    python validate_obligation.py obligation.json --strict        # Warnings fail too
    python validate_obligation.py obligation.json --thresholds policy.json

Exit codes: 0 valid, 1 invalid, 2 unreadable input.
"""

import argparse
import json
import logging
import sys
from datetime import date, datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from appropriations.models import ApportionmentRecord, BudgetAccount, Obligation
from appropriations.transaction import render_text_report, validate_transaction
from utils.config import ComplianceThresholds, EngineConfig
from utils.logging import configure_logging

logger = logging.getLogger("validate_obligation")

EXIT_VALID = 0
EXIT_INVALID = 1
EXIT_BAD_INPUT = 2


def _iso_date(text: str) -> date:
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date: {text!r}")


def load_document(path: Path, as_of: date):
    """Parse the input file into (transaction, account, apportionment).

    A transaction without an obligation date is evaluated as of ``as_of``.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the JSON is malformed or a record fails validation
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict) or "transaction" not in data:
        raise ValueError("input must be an object with a 'transaction' key")

    transaction = Obligation.model_validate(data["transaction"])
    if transaction.obligation_date is None:
        transaction = transaction.model_copy(update={"obligation_date": as_of})
    account = (BudgetAccount.model_validate(data["account"])
               if data.get("account") is not None else None)
    apportionment = (ApportionmentRecord.model_validate(data["apportionment"])
                     if data.get("apportionment") is not None else None)
    return transaction, account, apportionment


def main(argv=None):
    """Parse CLI arguments, validate the obligation and return an exit code."""
    parser = argparse.ArgumentParser(
        description="Check a proposed obligation against appropriations law")
    parser.add_argument("input", type=Path, help="JSON file with transaction and account")
    parser.add_argument("--as-of", type=_iso_date, default=None,
                        help="Evaluation date, YYYY-MM-DD (default: today)")
    parser.add_argument("--thresholds", type=Path, default=None,
                        help="JSON file overriding policy thresholds")
    parser.add_argument("--json", action="store_true",
                        help="Output the result as JSON")
    parser.add_argument("--strict", action="store_true",
                        help="Exit non-zero when warnings are present")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")
    parser.add_argument("--log-format", choices=["text", "json"], default=None,
                        help="Log format (default: ACE_LOG_FORMAT or text)")
    args = parser.parse_args(argv)

    config = EngineConfig.from_env()
    configure_logging(args.log_format or config.log_format,
                      "DEBUG" if args.verbose else config.log_level)

    if args.as_of is not None:
        now = datetime(args.as_of.year, args.as_of.month, args.as_of.day, tzinfo=timezone.utc)
    else:
        now = datetime.now(timezone.utc)

    try:
        thresholds = (ComplianceThresholds.load_json(args.thresholds)
                      if args.thresholds else config.load_thresholds())
        transaction, account, apportionment = load_document(args.input, now.date())
    except (OSError, ValueError, ValidationError) as e:
        logger.error("Cannot read input: %s", e)
        return EXIT_BAD_INPUT

    result = validate_transaction(transaction, account, apportionment, now=now,
                                  thresholds=thresholds)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(render_text_report(result))

    failed = not result.is_valid or (args.strict and result.warning_count() > 0)
    return EXIT_INVALID if failed else EXIT_VALID


if __name__ == "__main__":
    sys.exit(main())
