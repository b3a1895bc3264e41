"""Shared repository result types."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class LeaderboardRow:
    """Score joined with the owner's username, before ranks are assigned."""

    user_id: str
    username: str
    points: int


__all__ = ["LeaderboardRow"]
