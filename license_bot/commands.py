"""
Chat command handling.

Commands are plain text (a leading "/" is accepted). Admin privilege is
decided by an injected ``is_admin(caller)`` function, so this module never
depends on how the chat platform represents roles.
"""

import logging
import shlex
from dataclasses import dataclass, field
from typing import Callable, Optional

from license_bot.api_client import AdminApiClient, AdminApiError

logger = logging.getLogger(__name__)

NO_PERMISSION = "❌ You don't have permission to do that."

HELP_TEXT = "\n".join([
    "**License commands**",
    "`createlicense <user> [--expires YYYY-MM-DD] [--notes TEXT]` - issue a key",
    "`revokelicense <key>` - revoke a key",
    "`listlicenses` - list recent keys",
    "`lookup <user>` - keys for a user",
    "`genkey` - issue a key to yourself",
    "`mylicense` - show your own keys",
])


@dataclass(frozen=True)
class CallerContext:
    """Who sent a command, as reported by the chat platform."""
    user_id: str
    user_name: str = ""
    roles: frozenset[str] = field(default_factory=frozenset)
    can_manage_guild: bool = False


AdminCheck = Callable[[CallerContext], bool]


def role_admin_check(admin_role_id: Optional[str]) -> AdminCheck:
    """
    Build an ``is_admin`` function from a role id.

    Without a configured role, callers with the manage-guild permission
    are admins.
    """
    def is_admin(caller: CallerContext) -> bool:
        if not admin_role_id:
            return caller.can_manage_guild
        return admin_role_id in caller.roles
    return is_admin


class CommandError(Exception):
    """Malformed command text; the message is shown to the caller."""


def mention(user_id: str) -> str:
    return f"<@{user_id}>"


def _expiry(value: Optional[str]) -> str:
    return value[:10] if value else "never"


def parse_command(text: str) -> tuple[str, list[str], dict[str, str]]:
    """Split command text into (name, positional args, --options)."""
    try:
        tokens = shlex.split(text or "")
    except ValueError as e:
        raise CommandError(f"Could not parse command: {e}")
    if not tokens:
        raise CommandError("Empty command. Try `help`.")

    name = tokens[0].lstrip("/").lower()
    args: list[str] = []
    options: dict[str, str] = {}
    i = 1
    while i < len(tokens):
        token = tokens[i]
        if token.startswith("--"):
            option = token[2:]
            if "=" in option:
                option, value = option.split("=", 1)
            elif i + 1 < len(tokens):
                i += 1
                value = tokens[i]
            else:
                raise CommandError(f"Missing value for --{option}")
            options[option.lower()] = value
        else:
            args.append(token)
        i += 1
    return name, args, options


class CommandFrontend:
    """Routes chat commands to the admin API and renders replies."""

    def __init__(self, client: AdminApiClient, is_admin: AdminCheck, list_limit: int = 20):
        self.client = client
        self.is_admin = is_admin
        self.list_limit = list_limit
        self._handlers = {
            "createlicense": (self._create, True),
            "revokelicense": (self._revoke, True),
            "listlicenses": (self._list, True),
            "lookup": (self._lookup, True),
            "genkey": (self._genkey, True),
            "mylicense": (self._mylicense, False),
            "help": (self._help, False),
        }

    async def handle(self, caller: CallerContext, text: str) -> str:
        """Run one command and return the reply text."""
        try:
            name, args, options = parse_command(text)
        except CommandError as e:
            return f"❌ {e}"

        entry = self._handlers.get(name)
        if entry is None:
            return f"Unknown command `{name}`. Try `help`."

        handler, admin_only = entry
        if admin_only and not self.is_admin(caller):
            logger.info(f"Denied {name} for {caller.user_id}")
            return NO_PERMISSION

        try:
            return await handler(caller, args, options)
        except CommandError as e:
            return f"❌ {e}"
        except AdminApiError as e:
            return f"❌ Error: {e.message}"

    async def _create(self, caller: CallerContext, args: list[str], options: dict[str, str]) -> str:
        if len(args) != 1:
            raise CommandError("Usage: createlicense <user> [--expires YYYY-MM-DD] [--notes TEXT]")
        owner = args[0]
        expires = options.get("expires") or None
        notes = options.get("notes", "")

        data = await self.client.create(owner, expires_at=expires, notes=notes)
        logger.info(f"{caller.user_id} created a license for {owner}")

        return "\n".join([
            "✅ **License Created**",
            f"User: {mention(owner)}",
            f"Key: `{data['key']}`",
            f"Expires: {_expiry(data.get('expires_at'))}",
            f"Notes: {notes or '—'}",
        ])

    async def _revoke(self, caller: CallerContext, args: list[str], options: dict[str, str]) -> str:
        if len(args) != 1:
            raise CommandError("Usage: revokelicense <key>")

        data = await self.client.revoke(args[0])
        key = data.get("key", args[0])
        status = data.get("status")
        if status == "already_revoked":
            return f"⚠️ Key `{key}` is already revoked."
        if status == "blacklisted":
            return f"🚫 Key `{key}` was not issued here; it has been blacklisted."
        return f"✅ License `{key}` has been revoked."

    async def _list(self, caller: CallerContext, args: list[str], options: dict[str, str]) -> str:
        rows = await self.client.list_licenses(limit=0)
        if not rows:
            return "No licenses found."

        shown = rows[:self.list_limit]
        lines = [
            f"{'✅' if r['active'] else '❌'} `{r['key']}` — {mention(r['owner'])} — "
            f"{_expiry(r.get('expires_at'))} — IP: {r.get('server_ip') or 'unused'}"
            for r in shown
        ]
        return "\n".join(
            ["📋 **Licenses**", *lines, f"Showing {len(shown)} of {len(rows)}"]
        )

    async def _lookup(self, caller: CallerContext, args: list[str], options: dict[str, str]) -> str:
        if len(args) != 1:
            raise CommandError("Usage: lookup <user>")
        owner = args[0]

        rows = await self.client.lookup(owner)
        if not rows:
            return f"No licenses found for {mention(owner)}."

        lines = [
            f"{'✅' if r['active'] else '❌ Revoked'} `{r['key']}` — expires: {_expiry(r.get('expires_at'))}"
            for r in rows
        ]
        return f"**Licenses for {mention(owner)}:**\n" + "\n".join(lines)

    async def _genkey(self, caller: CallerContext, args: list[str], options: dict[str, str]) -> str:
        data = await self.client.create(caller.user_id, notes="generated manually")
        return f"🔑 Generated key:\n```{data['key']}```"

    async def _mylicense(self, caller: CallerContext, args: list[str], options: dict[str, str]) -> str:
        rows = await self.client.lookup(caller.user_id)
        if not rows:
            return "You don't have any licenses. Contact an admin to get one."

        active = [r for r in rows if r["active"]]
        if not active:
            return "Your license(s) have been revoked. Contact an admin."

        lines = [f"`{r['key']}` — expires: {_expiry(r.get('expires_at'))}" for r in active]
        return "🔑 **Your License(s):**\n" + "\n".join(lines)

    async def _help(self, caller: CallerContext, args: list[str], options: dict[str, str]) -> str:
        return HELP_TEXT
