"""
Command line front end for cipherstore.

Wraps a LocalStorage root in an EncryptionAdapter so files can be sealed,
read back and migrated from a shell:

    cipherstore keygen ./store.key
    cipherstore put --root ./data --key ./store.key report.pdf docs/report.pdf
    cipherstore cat --root ./data --key ./store.key docs/report.pdf > report.pdf
    cipherstore migrate --root ./data --key ./store.key
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from keyring.errors import KeyringError

from cipherstore.core.adapter import EncryptionAdapter
from cipherstore.core.config import AdapterSettings, load_settings
from cipherstore.core.exceptions import CipherStoreError, InvalidKeyError
from cipherstore.core.storage import LocalStorage
from cipherstore.security import keystore
from cipherstore.security.keys import EncryptionKey, generate_key, load_key_file
from cipherstore.security.transform import ReadPolicy

from .logging_config import configure_logging

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "cipherstore"


def _split_keyring_ref(ref: str) -> Tuple[str, str]:
    # "service/account" or just "account" under the default service
    if "/" in ref:
        service, account = ref.split("/", 1)
        return service, account
    return KEYRING_SERVICE, ref


def _load_key(args: argparse.Namespace) -> EncryptionKey:
    if args.keyring:
        service, account = _split_keyring_ref(args.keyring)
        key = keystore.load_key(service, account)
        if key is None:
            raise InvalidKeyError(f"no key stored in the keystore under {service}/{account}")
        return key
    if args.key:
        return load_key_file(args.key)
    raise InvalidKeyError("either --key or --keyring is required")


def _build_adapter(args: argparse.Namespace) -> EncryptionAdapter:
    settings = load_settings(args.settings) if args.settings else AdapterSettings()
    read_policy = ReadPolicy.LEGACY if getattr(args, "legacy", False) else None
    return EncryptionAdapter(
        LocalStorage(args.root),
        _load_key(args),
        read_policy=read_policy,
        settings=settings,
    )


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def _cmd_keygen(args: argparse.Namespace) -> int:
    key = generate_key()
    if args.keyring:
        service, account = _split_keyring_ref(args.keyring)
        secure, message = keystore.assess_keyring_backend()
        if not secure:
            if not args.force:
                raise CipherStoreError(f"{message}; use --force to store the key anyway")
            logger.warning("storing key despite keyring check: %s", message)
        keystore.save_key(service, account, key)
        print(f"Stored a new key in the keystore as {service}/{account}")
        return 0

    if not args.output:
        raise CipherStoreError("keygen needs an output path or --keyring")
    out = Path(args.output)
    if out.exists() and not args.force:
        raise CipherStoreError(f"{out} already exists; use --force to replace it")
    key.to_key_file(out)
    print(f"Wrote a new key to {out}")
    return 0


def _cmd_put(args: argparse.Namespace) -> int:
    adapter = _build_adapter(args)
    with open(args.source, "rb") as f:
        meta = adapter.write_stream(args.dest, f, {"visibility": args.visibility})
    print(f"Stored {args.source} as {meta['path']}")
    return 0


def _cmd_cat(args: argparse.Namespace) -> int:
    adapter = _build_adapter(args)
    with adapter.read_stream(args.path) as plaintext:
        shutil.copyfileobj(plaintext, sys.stdout.buffer)
    sys.stdout.buffer.flush()
    return 0


def _cmd_size(args: argparse.Namespace) -> int:
    adapter = _build_adapter(args)
    print(adapter.size(args.path))
    return 0


def _cmd_ls(args: argparse.Namespace) -> int:
    adapter = _build_adapter(args)
    for entry in adapter.list_contents(args.path, recursive=args.recursive):
        if entry["type"] == "dir":
            print(f"d  {entry['path']}/")
            continue
        state = "sealed" if adapter.is_encrypted(entry["path"]) else "plain"
        print(f"f  {entry['path']}  [{state}]")
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    adapter = _build_adapter(args)
    files = [e for e in adapter.list_contents(args.path, recursive=True) if e["type"] == "file"]
    sealed = sum(1 for e in files if adapter.seal_legacy(e["path"]))
    print(f"Sealed {sealed} of {len(files)} files")
    return 0


# ----------------------------------------------------------------------
# Parser
# ----------------------------------------------------------------------


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cipherstore",
        description="Transparent encryption for files kept in a local storage root.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    key_source = argparse.ArgumentParser(add_help=False)
    key_source.add_argument("--key", help="Path to a key file")
    key_source.add_argument(
        "--keyring",
        help="Load the key from the OS keystore as SERVICE/ACCOUNT (or ACCOUNT)",
    )

    store = argparse.ArgumentParser(add_help=False, parents=[key_source])
    store.add_argument("--root", required=True, help="Storage root directory")
    store.add_argument("--settings", help="JSON settings file (read policy, chunk size)")

    legacy = argparse.ArgumentParser(add_help=False)
    legacy.add_argument(
        "--legacy",
        action="store_true",
        help="Return content that is not encrypted as-is instead of failing",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    keygen = sub.add_parser("keygen", help="Generate a new key", parents=[key_source])
    keygen.add_argument("output", nargs="?", help="Where to write the key file")
    keygen.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing key file, or use a keyring backend that looks insecure",
    )
    keygen.set_defaults(func=_cmd_keygen)

    put = sub.add_parser("put", help="Encrypt a local file into the store", parents=[store])
    put.add_argument("source", help="Local file to store")
    put.add_argument("dest", help="Path inside the store")
    put.add_argument("--visibility", choices=["public", "private"], default="public")
    put.set_defaults(func=_cmd_put)

    cat = sub.add_parser("cat", help="Decrypt a stored file to stdout", parents=[store, legacy])
    cat.add_argument("path")
    cat.set_defaults(func=_cmd_cat)

    size = sub.add_parser("size", help="Print the plaintext size of a stored file", parents=[store, legacy])
    size.add_argument("path")
    size.set_defaults(func=_cmd_size)

    ls = sub.add_parser("ls", help="List stored files", parents=[store])
    ls.add_argument("path", nargs="?", default="")
    ls.add_argument("-r", "--recursive", action="store_true")
    ls.set_defaults(func=_cmd_ls)

    migrate = sub.add_parser("migrate", help="Encrypt every plaintext file in place", parents=[store])
    migrate.add_argument("path", nargs="?", default="")
    migrate.set_defaults(func=_cmd_migrate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        return args.func(args)
    except (CipherStoreError, KeyringError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
