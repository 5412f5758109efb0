#!/usr/bin/env python3
"""
Exam Owner Config Helper Tool

Creates a sample session configuration or validates an existing one.

Usage:
    python tools/config_helper.py --sample config.json
    python tools/config_helper.py --validate config.json
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from examengine.config_loader import create_sample_config, load_config  # noqa: E402
from examengine.models import SessionConfig  # noqa: E402


def describe_config(config: SessionConfig) -> list:
    """One line per setting, grouped the way an exam owner reads them."""
    return [
        f"  Max warnings before auto-submit: {config.max_warnings}",
        f"  Violation debounce: {config.violation_debounce_seconds}s",
        f"  Integrity checks every: {config.integrity_check_interval_seconds}s "
        f"(network: {'on' if config.network_monitoring else 'off'}, "
        f"assistants: {'on' if config.assistant_monitoring else 'off'})",
        f"  Per test case: {config.per_case_timeout_seconds}s, {config.memory_limit_mb} MB",
        f"  Submission grace: {config.submission_grace_seconds}s",
        f"  Pass threshold: {config.pass_threshold:.0%}",
        f"  Submissions directory: {config.store_dir}",
    ]


def validate_config_file(config_path: Path) -> bool:
    """Validate a configuration file and print its settings."""
    print("=" * 60)
    print("CONFIG VALIDATOR")
    print("=" * 60)
    print(f"\nValidating: {config_path}\n")

    if not config_path.exists():
        print(f"Error: File '{config_path}' not found.")
        return False

    try:
        config = load_config(config_path)
    except ValueError as e:
        print("✗ Configuration is INVALID!")
        print(f"  Error: {e}")
        return False

    print("Configuration:")
    for line in describe_config(config):
        print(line)
    print()
    print("✓ Configuration is VALID!")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Create or validate exam session configuration files."
    )
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument(
        "--sample",
        metavar="OUT",
        help="Write a sample configuration with every setting documented"
    )
    action.add_argument(
        "--validate",
        metavar="FILE",
        help="Validate an existing configuration file"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing file with --sample"
    )

    args = parser.parse_args()

    if args.sample:
        out = Path(args.sample)
        if out.exists() and not args.force:
            print(f"Error: '{out}' already exists (use --force to overwrite)", file=sys.stderr)
            sys.exit(1)
        create_sample_config(out)
        return

    sys.exit(0 if validate_config_file(Path(args.validate)) else 1)


if __name__ == "__main__":
    main()
