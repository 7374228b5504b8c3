"""Shared route dependencies."""

from fastapi import Header


def get_actor(x_actor: str | None = Header(default=None, alias="X-Actor")) -> str | None:
    """Staff member performing the request, recorded in the audit log."""
    return x_actor.strip() if x_actor and x_actor.strip() else None
