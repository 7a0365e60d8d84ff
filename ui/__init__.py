"""
ui/ — Discord UI components for LeagueOps Core
===============================================
Contains:
- Embed builder functions
- Brand palette
- No database access or business logic
"""

from ui.brand import Colors, create_embed, error_embed, success_embed

from ui.bracket_embeds import (
    build_bracket_embed,
    build_match_embed,
    format_match_line,
)

from ui.tournament_embeds import (
    build_available_teams_embed,
    build_registrations_embed,
    build_team_list_embed,
    build_tournament_embed,
    build_tournament_list_embed,
)

__all__ = [
    "Colors",
    "create_embed",
    "error_embed",
    "success_embed",
    "build_bracket_embed",
    "build_match_embed",
    "format_match_line",
    "build_available_teams_embed",
    "build_registrations_embed",
    "build_team_list_embed",
    "build_tournament_embed",
    "build_tournament_list_embed",
]
