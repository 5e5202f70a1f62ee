import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bookings.config import load_settings
from bookings.database import Database, resolve_database_path
from bookings.errors import UniqueViolation
from bookings.models import Role
from bookings.validation import MIN_NAME_LENGTH, MIN_PASSWORD_LENGTH, is_valid_email


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a bookings user account")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.ADMIN.value,
        help="Role to grant (default: ADMIN; self-registration always creates CLIENT accounts)",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to BOOKINGS_DB_PATH or data/bookings.sqlite3)",
    )
    return parser.parse_args(argv)


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


def main(argv=None) -> int:
    args = parse_args(argv)

    name = args.name.strip()
    if len(name) < MIN_NAME_LENGTH:
        print(f"Error: name must be at least {MIN_NAME_LENGTH} characters long", file=sys.stderr)
        return 1
    if not is_valid_email(args.email):
        print("Error: email address is not valid", file=sys.stderr)
        return 1

    password = prompt_for_password()

    settings = load_settings()
    db_path = resolve_database_path(args.db_path) if args.db_path else settings.database_path

    database = Database(db_path, busy_timeout=settings.busy_timeout_seconds)
    database.initialize()

    try:
        user = database.create_user(name, args.email, password, role=Role(args.role))
    except UniqueViolation:
        print("Error: a user with that email already exists", file=sys.stderr)
        return 1

    print(f"Created {user.role.value} user {user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
