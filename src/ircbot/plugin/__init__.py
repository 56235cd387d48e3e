"""Plugin system: manager, plugin base class, ACLs and built-in plugins."""

from ircbot.plugin.acl import Acl
from ircbot.plugin.base import Plugin
from ircbot.plugin.manager import Manager

__all__ = ["Acl", "Manager", "Plugin"]
