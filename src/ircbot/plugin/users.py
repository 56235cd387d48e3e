"""Users plugin: WHOIS-based identification and per-account ACLs."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cachetools import TTLCache
from loguru import logger

from ircbot.core.constants import HOOK_CONNECTED, HOOK_END_OF_WHOIS, HOOK_WHOIS_ACCOUNT
from ircbot.events import PrivMsg
from ircbot.irc.client import ReplyMode
from ircbot.plugin.acl import Acl
from ircbot.plugin.base import Plugin

if TYPE_CHECKING:
    from ircbot.plugin.manager import Manager

_ACL_ARGS_RE = re.compile(r"^(\S+)((?: +[+\-]?[^.\s]+\.\S+)+) *$")

NOT_IDENTIFIED = "You are not identified with NickServ."
NOT_ALLOWED = "You are not allowed to use this command."

# Seconds a WHOIS may stay unanswered before its waiting actions are dropped
WHOIS_TIMEOUT = 60


@dataclass
class PendingAction:
    """Callback waiting for the sender's account to be resolved."""

    callback: Callable[[PrivMsg], Any]
    message: PrivMsg
    owner: str


class Users(Plugin):
    """Resolves senders to NickServ accounts and gates restricted commands.

    Accounts are learned from WHOIS (numeric 330) and cached per user@host. While a
    WHOIS is outstanding, further actions for the same nickname queue behind it.
    Outstanding lookups are abandoned on reconnect or after WHOIS_TIMEOUT seconds.
    """

    db_schema = {
        "users": {
            "user_id": "INTEGER PRIMARY KEY",
            "user_name": "TEXT",
            "user_acl": "TEXT",
        }
    }

    def __init__(self, manager: Manager, database_path: str | Path | None = None) -> None:
        super().__init__(manager, database_path)
        self._accounts: TTLCache[str, str] = TTLCache(
            maxsize=1024,
            ttl=float(manager.config.identity_cache_ttl_seconds),
        )
        self._acls: dict[str, Acl] = {}
        self._pending: dict[str, list[PendingAction]] = {}
        self._idents: dict[str, str] = {}

    def setup(self) -> None:
        self.register_command("master", self.set_master)
        self.register_command("acl", self.set_acl, "users.acl")
        self.register_hook(HOOK_WHOIS_ACCOUNT, self._whois_received)
        self.register_hook(HOOK_END_OF_WHOIS, self._whois_received)
        self.register_hook(HOOK_CONNECTED, self._connected)

    def _notice(self, msg: PrivMsg, text: str) -> None:
        self.client.reply(msg, text, ReplyMode.NOTICE)

    def account_for(self, msg: PrivMsg) -> str | None:
        """Cached account of the sender, if known."""
        if msg.ident is None:
            return None
        return self._accounts.get(msg.ident)

    def pending_count(self, nickname: str) -> int:
        return len(self._pending.get(nickname.lower(), ()))

    def execute(self, callback: Callable[[PrivMsg], Any], msg: PrivMsg, owner: str | None = None) -> None:
        """Run callback once the sender is identified; issue WHOIS if needed."""
        nick, ident = msg.nick, msg.ident
        if nick is None or ident is None:
            logger.debug("Ignoring identity check for message without user prefix")
            return
        if self.account_for(msg) is not None:
            callback(msg)
            return

        key = nick.lower()
        pending = self._pending.setdefault(key, [])
        pending.append(PendingAction(callback=callback, message=msg, owner=owner or self.name))
        self._idents[key] = ident
        # One WHOIS per nickname; later requests wait for the same answer
        if len(pending) == 1:
            self.client.whois(nick)
            self.manager.register_timeout(self.name, WHOIS_TIMEOUT, partial(self._whois_expired, key, pending))

    def verify_access(
        self,
        callback: Callable[[PrivMsg], Any],
        msg: PrivMsg,
        restrict: str,
        owner: str | None = None,
    ) -> None:
        """Run callback if the sender's ACL allows restrict ("resource.privilege")."""
        self.execute(partial(self._check_access, callback=callback, restrict=restrict), msg, owner)

    def _check_access(self, msg: PrivMsg, *, callback: Callable[[PrivMsg], Any], restrict: str) -> None:
        account = self.account_for(msg)
        if account is not None and self.acl_for(account).is_allowed_restriction(restrict):
            callback(msg)
        else:
            logger.info("Denied {} to {}", restrict, msg.nick)
            self._notice(msg, NOT_ALLOWED)

    def acl_for(self, account: str) -> Acl:
        acl = self._acls.get(account)
        if acl is None:
            row = self.db.fetch_one("users", {"user_name": account})
            acl = Acl(row["user_acl"] if row else None)
            self._acls[account] = acl
        return acl

    def _connected(self, hook: str, data: Any) -> None:
        if self._pending:
            logger.info("Dropping actions waiting on WHOIS for {}", ", ".join(self._pending))
        self._pending.clear()
        self._idents.clear()

    def _whois_expired(self, key: str, batch: list[PendingAction]) -> None:
        if self._pending.get(key) is not batch:
            return
        logger.warning("WHOIS for {} timed out, dropping {} action(s)", key, len(batch))
        del self._pending[key]
        self._idents.pop(key, None)

    def _whois_received(self, hook: str, data: Any) -> None:
        if hook == HOOK_WHOIS_ACCOUNT:
            nickname, account = data
            key = nickname.lower()
            ident = self._idents.pop(key, None)
            if ident is not None:
                self._accounts[ident] = account.lower()
            for action in self._pending.pop(key, []):
                if not self.manager.is_enabled(action.owner):
                    logger.debug("Dropping pending action of disabled plugin {}", action.owner)
                    continue
                action.callback(action.message)
        elif hook == HOOK_END_OF_WHOIS:
            nickname = data
            key = nickname.lower()
            self._idents.pop(key, None)
            if self._pending.pop(key, None):
                self.client.send_notice(nickname, NOT_IDENTIFIED)

    # -- commands --

    def set_master(self, msg: PrivMsg) -> None:
        if self.db.fetch_one("users") is not None:
            self._notice(msg, "Master has already been set.")
            return
        self.execute(self._store_master, msg)

    def _store_master(self, msg: PrivMsg) -> None:
        account = self.account_for(msg)
        if account is None:
            return
        if self.db.fetch_one("users") is not None:
            self._notice(msg, "Master has already been set.")
            return
        self.db.insert("users", {"user_name": account, "user_acl": "*.*"})
        self._acls[account] = Acl("*.*")
        logger.info("{} ({}) is now the master", msg.nick, account)
        self._notice(msg, "You are now the master.")

    def set_acl(self, msg: PrivMsg) -> None:
        self.execute(self._store_acl, msg)

    def _store_acl(self, msg: PrivMsg) -> None:
        match = _ACL_ARGS_RE.match(msg.message)
        if match is None:
            self._notice(msg, "Invalid parameters for ACL.")
            return
        username = match.group(1).lower()
        modifications = match.group(2).strip()

        row = self.db.fetch_one("users", {"user_name": username})
        acl = self._acls.get(username) or Acl(row["user_acl"] if row else None)
        acl.modify(modifications)
        if row is None:
            self.db.insert("users", {"user_name": username, "user_acl": str(acl)})
        else:
            self.db.update("users", {"user_acl": str(acl)}, {"user_name": username})
        self._acls[username] = acl
        logger.info("ACL of {} is now {!r}", username, str(acl))
        self._notice(msg, "ACL has been modified.")
