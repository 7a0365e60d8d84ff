"""
Lookups the cogs use to turn what a user typed into records.

Users name teams by name, tag or id and matches by (round, position);
these helpers search already-loaded view data and raise NotFound.
"""

from typing import Iterable, Optional

from services.errors import NotFound, ValidationError


def find_team(teams: Iterable, query: str):
    """Team whose id, tag or name matches ``query`` (case-insensitive)."""
    wanted = query.strip().lower()
    teams = list(teams)
    for attr in ("id", "tag", "name"):
        matches = [t for t in teams if (getattr(t, attr) or "").lower() == wanted]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            raise ValidationError(f"'{query}' matches several teams; use the team id.")
    raise NotFound(f"No team called '{query}'.")


def find_registration(registrations: Iterable, team_id: str, active_only: bool = True):
    """Newest registration of ``team_id``, active ones only by default."""
    candidates = [
        r
        for r in registrations
        if r.team_id == team_id
        and (not active_only or r.is_active)
    ]
    if not candidates:
        raise NotFound("That team has no active registration for this tournament.")
    return max(candidates, key=lambda r: r.created_at or "")


def find_match(matches: Iterable, round: int, position: int):
    for match in matches:
        if match.round == round and match.position == position:
            return match
    raise NotFound(f"No match at round {round}, position {position}.")


def team_name(names: dict, team_id: Optional[str]) -> Optional[str]:
    if not team_id:
        return None
    return names.get(team_id, team_id[:8])
