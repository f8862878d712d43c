import argparse
import asyncio
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.db.session import SessionLocal
from backoffice.services import auth as auth_service


async def bootstrap_admin(
    *,
    username: str,
    password: str,
    reset_password: bool = False,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> None:
    factory = session_factory or SessionLocal
    async with factory() as session:
        admin, created = await auth_service.bootstrap_admin(
            session,
            username=username,
            password=password,
            reset_password=reset_password,
        )
        if created:
            print(f"Admin created: {admin.username} id={admin.id}")
        elif reset_password:
            print(f"Admin password reset: {admin.username} id={admin.id}")
        else:
            print(f"Admin already exists: {admin.username} id={admin.id} (unchanged)")


def _add_admin_commands(subparsers: argparse._SubParsersAction) -> None:
    admin = subparsers.add_parser("bootstrap-admin", help="Create the back-office admin account if it is missing")
    admin.add_argument("--username", required=True, help="Admin username")
    admin.add_argument("--password", required=True, help="Admin password")
    admin.add_argument(
        "--reset-password",
        action="store_true",
        help="Overwrite the password when the admin already exists",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Coupon back-office utilities")
    subparsers = parser.add_subparsers(dest="command")
    _add_admin_commands(subparsers)
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "bootstrap-admin":
        try:
            asyncio.run(
                bootstrap_admin(
                    username=args.username,
                    password=args.password,
                    reset_password=bool(args.reset_password),
                )
            )
        except ValueError as exc:
            raise SystemExit(str(exc))
        return True

    return False


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
