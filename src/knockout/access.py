"""
Who may see which match codes.
"""
from typing import Optional

from knockout.models import Bracket, Match

ADMIN_ROLE = 'admin'
USER_ROLE = 'user'
HIDDEN_CODE = '(hidden)'


class AuthContext:
    def __init__(self, username: Optional[str], role: str = USER_ROLE, team_name: Optional[str] = None):
        self.username = username
        self.role = role
        self.team_name = team_name

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def __repr__(self):
        return f"AuthContext(username={self.username}, role={self.role}, team_name={self.team_name})"


def can_view_code(match: Match, viewer: Optional[AuthContext]) -> bool:
    """Admins see every code; players only see codes of their own team's matches."""
    if viewer is None:
        return False
    if viewer.is_admin:
        return True
    if not viewer.team_name:
        return False
    return viewer.team_name in (match.team1, match.team2)


def redact_match(match: Match, viewer: Optional[AuthContext]) -> dict:
    data = match.to_dict()
    if not can_view_code(match, viewer):
        data['code'] = HIDDEN_CODE
    data['state'] = match.state
    return data


def redact_bracket(bracket: Bracket, viewer: Optional[AuthContext]) -> list:
    """Serialized bracket with codes hidden from viewers not entitled to them."""
    return [[redact_match(m, viewer) for m in round_matches] for round_matches in bracket.rounds]
