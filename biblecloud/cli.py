from __future__ import annotations

import argparse
import getpass
import sys

from biblecloud import __version__
from biblecloud.auth import add_local_user, list_local_users, remove_local_user


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="biblecloud-user",
        description="Manage the accounts of the local sign-in backend.",
    )
    ap.add_argument("-v", "--version", action="version", version=f"biblecloud {__version__}")
    sub = ap.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Create a user or reset its password")
    add.add_argument("email")
    add.add_argument(
        "--password",
        help="Password for the account (prompted when omitted)",
    )

    remove = sub.add_parser("remove", help="Delete a user")
    remove.add_argument("email")

    sub.add_parser("list", help="List configured users")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "add":
        password = args.password or getpass.getpass("Password: ")
        try:
            user = add_local_user(args.email, password)
        except ValueError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2
        print(f"Saved {user.email} ({user.uid})")
        return 0

    if args.command == "remove":
        if not remove_local_user(args.email):
            print(f"error: unknown user {args.email}", file=sys.stderr)
            return 1
        print(f"Removed {args.email}")
        return 0

    for email in list_local_users():
        print(email)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
