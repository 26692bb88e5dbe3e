"""
License Bot - command line entry point.

Runs one chat command against the license server and prints the reply.

Usage:
    python -m license_bot.main --user 1234 --role 42 "createlicense 5678 --notes trial"
    python -m license_bot.main --user 1234 mylicense
"""

import argparse
import asyncio
import logging
import sys

from license_bot.api_client import AdminApiClient
from license_bot.commands import CallerContext, CommandFrontend, role_admin_check
from license_bot.config import config

logger = logging.getLogger(__name__)


def build_frontend() -> CommandFrontend:
    client = AdminApiClient(
        base_url=config.license_server,
        admin_secret=config.admin_secret,
        timeout=config.timeout_seconds,
    )
    return CommandFrontend(
        client,
        is_admin=role_admin_check(config.admin_role_id),
        list_limit=config.list_limit,
    )


async def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="License Bot command runner")
    parser.add_argument("--user", required=True, help="Caller's chat user id")
    parser.add_argument("--name", default="", help="Caller's display name")
    parser.add_argument("--role", action="append", default=[],
                        help="Role id held by the caller (repeatable)")
    parser.add_argument("--manage-guild", action="store_true",
                        help="Caller holds the manage-guild permission")
    parser.add_argument("command", nargs="+", help="Command text")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=config.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    caller = CallerContext(
        user_id=args.user,
        user_name=args.name,
        roles=frozenset(args.role),
        can_manage_guild=args.manage_guild,
    )
    reply = await build_frontend().handle(caller, " ".join(args.command))
    print(reply)
    return 0


def run():
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
