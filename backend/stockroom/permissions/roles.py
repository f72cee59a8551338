# Overview: Closed set of user roles, ordered from least to most privileged.

from __future__ import annotations

import enum


class Role(str, enum.Enum):
    STAFF = "STAFF"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"

    @property
    def rank(self) -> int:
        return ROLE_HIERARCHY.index(self)

    @classmethod
    def parse(cls, value) -> "Role":
        """Accept a Role or its name in any case; raise ValueError otherwise."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise ValueError(f"unknown role: {value!r}")


ROLE_HIERARCHY = (Role.STAFF, Role.ADMIN, Role.SUPER_ADMIN)
