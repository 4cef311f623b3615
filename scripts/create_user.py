import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from horoscope_store.config import resolve_settings
from horoscope_store.factory import create_storage
from horoscope_store.models import NewUser, ZodiacSign
from horoscope_store.security import MIN_PASSWORD_LENGTH, hash_password


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Register a horoscope subscriber")
    parser.add_argument("email", help="Unique email address for the subscriber")
    parser.add_argument("sign", choices=[sign.value for sign in ZodiacSign], help="Zodiac sign")
    parser.add_argument("--first-name", default=None)
    parser.add_argument("--last-name", default=None)
    parser.add_argument("--phone", default=None, help="Phone number for SMS delivery")
    parser.add_argument("--sms", action="store_true", help="Opt the subscriber in to SMS delivery")
    parser.add_argument(
        "--no-newsletter",
        action="store_true",
        help="Opt the subscriber out of the email newsletter",
    )
    parser.add_argument(
        "--with-password",
        action="store_true",
        help="Prompt for a login password",
    )
    parser.add_argument(
        "--db",
        dest="database_url",
        default=None,
        help="Database URL or SQLite path (defaults to HOROSCOPE_DATABASE_URL or data/horoscope.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < MIN_PASSWORD_LENGTH:
            print(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password_hash = hash_password(prompt_for_password()) if args.with_password else None

    settings = resolve_settings()
    if args.database_url:
        settings = settings.with_environment({"HOROSCOPE_DATABASE_URL": args.database_url})

    storage = create_storage(settings)
    try:
        email = args.email.strip()
        if storage.get_user_by_email(email) is not None:
            print(f"Error: a user with email {email} already exists", file=sys.stderr)
            return 1
        user = storage.create_user(
            NewUser(
                email=email,
                zodiac_sign=args.sign,
                password=password_hash,
                first_name=args.first_name,
                last_name=args.last_name,
                phone=args.phone,
                sms_opt_in=args.sms,
                newsletter_opt_in=not args.no_newsletter,
            )
        )
    finally:
        storage.close()

    print(f"Created user #{user.id}: {user.email} ({user.zodiac_sign})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
