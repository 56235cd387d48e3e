"""Access control lists over (resource, privilege) pairs.

An ACL string is a space-separated list of ``[+|-]resource[.privilege]`` tokens.
A bare resource means privilege ``*``; ``-`` denies, ``+`` or no sign allows.
``*`` as resource or privilege matches everything.
"""

from __future__ import annotations

WILDCARD = "*"


def _parse_token(token: str) -> tuple[str, str, bool] | None:
    allow = True
    if token[0] == "-":
        allow = False
        token = token[1:]
    elif token[0] == "+":
        token = token[1:]
    if not token:
        return None
    if "." in token:
        resource, privilege = token.split(".")[:2]
    else:
        resource, privilege = token, WILDCARD
    if not resource or not privilege:
        return None
    return resource, privilege, allow


class Acl:
    """Allow/deny rules, normalized after every modification."""

    def __init__(self, acl_string: str | None = None) -> None:
        self._resources: dict[str, dict[str, bool]] = {}
        if acl_string is not None:
            self.modify(acl_string)

    def modify(self, acl_string: str) -> None:
        """Apply modification tokens in order, then drop redundant entries."""
        for token in acl_string.split():
            parsed = _parse_token(token)
            if parsed is None:
                continue
            resource, privilege, allow = parsed
            # A wildcard privilege can only be granted, never denied
            if privilege == WILDCARD and not allow:
                continue
            self._resources.setdefault(resource, {})[privilege] = allow
        self._normalize()

    def _normalize(self) -> None:
        if WILDCARD in self._resources.get(WILDCARD, {}):
            # Everything is allowed already; only exceptions matter
            for resource, privileges in self._resources.items():
                for privilege, allow in list(privileges.items()):
                    if allow and (resource, privilege) != (WILDCARD, WILDCARD):
                        del privileges[privilege]
        else:
            for privileges in self._resources.values():
                blanket = WILDCARD in privileges
                for privilege, allow in list(privileges.items()):
                    if privilege == WILDCARD:
                        continue
                    # Denies need an enclosing allow; allows under one are implied
                    if allow == blanket:
                        del privileges[privilege]
        self._resources = {res: privs for res, privs in self._resources.items() if privs}

    def is_allowed(self, resource: str, privilege: str) -> bool:
        """More specific rules override less specific ones; the default is deny."""
        allowed = False
        wildcard = self._resources.get(WILDCARD)
        if wildcard is not None:
            if WILDCARD in wildcard:
                allowed = True
            if privilege in wildcard:
                allowed = wildcard[privilege]
        specific = self._resources.get(resource)
        if specific is not None:
            if WILDCARD in specific:
                allowed = True
            if privilege in specific:
                allowed = specific[privilege]
        return allowed

    def is_allowed_restriction(self, restriction: str) -> bool:
        """Check a "resource.privilege" restriction string."""
        resource, _, privilege = restriction.partition(".")
        return self.is_allowed(resource, privilege or WILDCARD)

    def __str__(self) -> str:
        return " ".join(
            f"{'' if allow else '-'}{resource}.{privilege}"
            for resource, privileges in self._resources.items()
            for privilege, allow in privileges.items()
        )

    def __repr__(self) -> str:
        return f"Acl({str(self)!r})"
