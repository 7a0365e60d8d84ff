"""
services/bracket_builders.py — Bracket Construction Strategies
===============================================================
Turns an ordered list of approved team ids (seed 1 first) into planned
matches. The lifecycle engine asks the builder registered for a
tournament's format and persists whatever it returns.

A builder only has to honour the match invariants:
- rounds start at 1, positions are 0-based and unique within a round
- ``next_index`` points at a later-round match with a free slot
- both slots of a match are never filled from two different sources
  beyond its two team seats
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from services.status_enums import TournamentFormat

log = logging.getLogger(__name__)


@dataclass
class PlannedMatch:
    """A match to be created when the tournament starts."""

    index: int
    round: int
    position: int
    team1_id: Optional[str] = None
    team2_id: Optional[str] = None
    next_index: Optional[int] = None
    best_of: int = 1


class BracketBuilder(Protocol):
    def build(self, team_ids: list[str]) -> list[PlannedMatch]: ...


def next_power_of_two(n: int) -> int:
    if n <= 1:
        return 1
    p = 1
    while p < n:
        p <<= 1
    return p


def seeded_positions(n: int) -> list[int]:
    """
    Standard tournament seeding positions list (length n, n is power of two).
    Example n=8 => [1,8,4,5,2,7,3,6]
    """
    if n <= 1:
        return [1]
    if n == 2:
        return [1, 2]
    prev = seeded_positions(n // 2)
    out: list[int] = []
    for s in prev:
        out.append(s)
        out.append(n + 1 - s)
    return out


class SingleEliminationBuilder:
    """
    Standard seeded single elimination.

    The field is padded with byes to a power of two. A first-round pairing
    against a bye is not created as a match: the seeded team is placed
    directly into its second-round slot.
    """

    def __init__(self, best_of: int = 1, final_best_of: Optional[int] = None):
        self.best_of = best_of
        self.final_best_of = final_best_of or best_of

    def build(self, team_ids: list[str]) -> list[PlannedMatch]:
        n = len(team_ids)
        if n < 2:
            return []

        size = next_power_of_two(n)
        total_rounds = size.bit_length() - 1

        # Index every (round, position) slot of the full tree first.
        grid: dict[tuple[int, int], PlannedMatch] = {}
        for rnd in range(1, total_rounds + 1):
            for pos in range(size >> rnd):
                best_of = self.final_best_of if rnd == total_rounds else self.best_of
                grid[(rnd, pos)] = PlannedMatch(
                    index=-1, round=rnd, position=pos, best_of=best_of
                )

        dropped: set[tuple[int, int]] = set()
        order = seeded_positions(size)
        for pos in range(size // 2):
            seed_a, seed_b = order[2 * pos], order[2 * pos + 1]
            team_a = team_ids[seed_a - 1] if seed_a <= n else None
            team_b = team_ids[seed_b - 1] if seed_b <= n else None
            match = grid[(1, pos)]
            match.team1_id, match.team2_id = team_a, team_b

            if total_rounds > 1 and (team_a is None or team_b is None):
                advancing = team_a or team_b
                target = grid[(2, pos // 2)]
                if pos % 2 == 0:
                    target.team1_id = advancing
                else:
                    target.team2_id = advancing
                dropped.add((1, pos))

        planned = [m for key, m in sorted(grid.items()) if key not in dropped]
        index_of = {}
        for i, match in enumerate(planned):
            match.index = i
            index_of[(match.round, match.position)] = i

        for match in planned:
            if match.round < total_rounds:
                match.next_index = index_of[(match.round + 1, match.position // 2)]

        log.debug(
            f"[BRACKET] Single elimination: {n} teams, size {size}, "
            f"{total_rounds} rounds, {len(dropped)} byes"
        )
        return planned


class RoundRobinBuilder:
    """Everyone plays everyone once (circle method). Every match is a leaf."""

    def __init__(self, best_of: int = 1):
        self.best_of = best_of

    def build(self, team_ids: list[str]) -> list[PlannedMatch]:
        if len(team_ids) < 2:
            return []

        seats: list[Optional[str]] = list(team_ids)
        if len(seats) % 2:
            seats.append(None)
        count = len(seats)

        planned: list[PlannedMatch] = []
        for rnd in range(1, count):
            position = 0
            for i in range(count // 2):
                home, away = seats[i], seats[count - 1 - i]
                if home is None or away is None:
                    continue
                planned.append(
                    PlannedMatch(
                        index=len(planned),
                        round=rnd,
                        position=position,
                        team1_id=home,
                        team2_id=away,
                        best_of=self.best_of,
                    )
                )
                position += 1
            # Rotate everyone but the first seat.
            seats = [seats[0], seats[-1]] + seats[1:-1]

        return planned


DEFAULT_BUILDERS: dict[str, BracketBuilder] = {
    TournamentFormat.SINGLE_ELIMINATION.value: SingleEliminationBuilder(),
    TournamentFormat.ROUND_ROBIN.value: RoundRobinBuilder(),
}


def buildable_formats(builders: Optional[dict[str, BracketBuilder]] = None) -> list[str]:
    """Formats, in catalogue order, that have a builder and so can be started."""
    builders = DEFAULT_BUILDERS if builders is None else builders
    return [f.value for f in TournamentFormat if f.value in builders]
