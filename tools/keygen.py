#!/usr/bin/env python3
"""
keygen.py - Generate a Fernet key for encrypting a question bank.

Usage:
    python tools/keygen.py --out exams.key
    python tools/keygen.py --out exams.key --force

Note: build_bank.py --password encrypts with a password instead of a key file.
"""

import argparse
import sys
from pathlib import Path

from cryptography.fernet import Fernet


def generate_key(output_file: str, force: bool = False) -> bytes:
    """
    Generate a new Fernet key and save it to file.

    Raises:
        FileExistsError: if output_file exists and force is False
    """
    path = Path(output_file)
    if path.exists() and not force:
        raise FileExistsError(f"{path} already exists (use --force to overwrite)")

    key = Fernet.generate_key()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'wb') as f:
        f.write(key)
    return key


def main():
    parser = argparse.ArgumentParser(
        description="Generate a new Fernet encryption key for question banks.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python tools/keygen.py --out exams.key
  python tools/build_bank.py --in bank.json --out banks/bank.enc --key-file exams.key

Security Notes:
  - Never distribute the key together with the encrypted bank
  - Generate a new key for every exam sitting
        """
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output file path for the key (e.g., exams.key)"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing key file"
    )

    args = parser.parse_args()

    try:
        key = generate_key(args.out, force=args.force)
    except (FileExistsError, OSError) as e:
        print(f"[ERROR] Error generating key: {e}", file=sys.stderr)
        sys.exit(1)

    print("[OK] Success: Encryption key generated")
    print(f"  Output: {args.out}")
    print(f"  Key (base64): {key.decode('utf-8')}")
    print("\n[!] SECURITY: Store this key securely. Never commit to version control.")


if __name__ == "__main__":
    main()
