"""Command-line interface for the horoscope store."""

from __future__ import annotations
import argparse
import logging
import sys
from typing import Sequence

from horoscope_store.config import StorageSettings, resolve_settings
from horoscope_store.factory import create_storage
from horoscope_store.models import ZodiacSign
from horoscope_store.storage import Storage

logger = logging.getLogger("horoscope.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Horoscope store utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the storage schema")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP API (default: 8000)",
    )

    users_parser = subparsers.add_parser("users", help="List registered users")
    users_parser.add_argument(
        "--sign",
        choices=[sign.value for sign in ZodiacSign],
        default=None,
        help="Only list users with this zodiac sign",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "users"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _serve(*, storage: Storage, host: str, port: int) -> None:
    from horoscope_store.service import create_app
    import uvicorn

    logger.info("Starting horoscope API on http://%s:%s", host, port)
    app = create_app(storage=storage)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _list_users(storage: Storage, sign: str | None = None) -> None:
    users = storage.get_users_by_zodiac_sign(sign) if sign else storage.list_users()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Email':<32}  {'Sign':<12}  {'SMS':<3}  {'News':<4}  Created")
    print("-" * 88)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        sms = "yes" if user.sms_opt_in else "no"
        newsletter = "yes" if user.newsletter_opt_in else "no"
        print(f"{user.id:>4}  {user.email:<32}  {user.zodiac_sign:<12}  {sms:<3}  {newsletter:<4}  {created}")


def main(argv: Sequence[str] | None = None, *, settings: StorageSettings | None = None) -> None:
    """Entry point for CLI usage."""

    settings = settings or resolve_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    args = _parse_args(argv)
    storage = create_storage(settings)

    if args.command == "serve":
        _serve(storage=storage, host=args.host, port=args.port)
        return

    try:
        if args.command == "users":
            _list_users(storage, args.sign)
        elif args.command == "init-db":
            print(f"Storage initialisation complete ({settings.backend}).")
    finally:
        storage.close()


if __name__ == "__main__":
    main()
