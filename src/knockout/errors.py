"""
Exceptions raised by the bracket engine and its storage layer.
"""


class BracketError(Exception):
    """Base exception for all bracket engine errors."""

    status_code = 400


class InvalidEntrantCount(BracketError):
    """Raised when a bracket is requested for fewer than two entrants."""

    def __init__(self, count: int):
        super().__init__(f'At least two teams are required to start a tournament (got {count}).')
        self.count = count


class MatchNotFound(BracketError):
    """Raised when a round/match index does not address an existing match."""

    status_code = 404

    def __init__(self, round_index, match_index):
        super().__init__(f'No match at round {round_index}, match {match_index}.')
        self.round_index = round_index
        self.match_index = match_index


class InvalidWinner(BracketError):
    """Raised when the reported winner is not a valid occupant of the match."""

    def __init__(self, winner, team1, team2):
        super().__init__(f'"{winner}" cannot win a match between "{team1}" and "{team2}".')
        self.winner = winner


class MatchAlreadyDecided(BracketError):
    """Raised when a different winner is reported for a decided match."""

    status_code = 409

    def __init__(self, current_winner, winner):
        super().__init__(f'Match already decided in favour of "{current_winner}"; cannot change it to "{winner}".')
        self.current_winner = current_winner


class TournamentNotFound(BracketError):
    """Raised when the store has no tournament with the requested id."""

    status_code = 404

    def __init__(self, tournament_id):
        super().__init__(f'Tournament "{tournament_id}" not found.')
        self.tournament_id = tournament_id


class Conflict(BracketError):
    """Raised when a bracket is saved against a stale version."""

    status_code = 409

    def __init__(self, tournament_id, expected_version, current_version):
        super().__init__(
            f'Tournament "{tournament_id}" was modified by someone else '
            f'(expected version {expected_version}, found {current_version}). Reload and try again.'
        )
        self.expected_version = expected_version
        self.current_version = current_version


class MatchNotReady(BracketError):
    """Raised when a result is reported before both teams of a match are known."""

    status_code = 409

    def __init__(self, round_index, match_index):
        super().__init__(f'Match at round {round_index}, match {match_index} is still waiting for a team.')
        self.round_index = round_index
        self.match_index = match_index
