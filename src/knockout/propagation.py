"""
Applying match results and advancing winners through the bracket.
"""
import math
import random
from typing import Optional

from knockout.elimination import generate_match_code
from knockout.errors import InvalidWinner, MatchAlreadyDecided, MatchNotFound, MatchNotReady
from knockout.models import BYE, TBD, READY, Bracket, Match


class ReportOutcome:
    """Result of report_result. Unpacks as (bracket, completed, champion)."""

    def __init__(self, bracket: Bracket, completed: bool = False, champion: Optional[str] = None):
        self.bracket = bracket
        self.completed = completed
        self.champion = champion

    def __iter__(self):
        return iter((self.bracket, self.completed, self.champion))

    def __repr__(self):
        return f"ReportOutcome(completed={self.completed}, champion={self.champion})"


def _is_index(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def get_match(bracket: Bracket, round_index: int, match_index: int) -> Match:
    """Look up a match, raising MatchNotFound for any bad index."""
    if bracket is None or not _is_index(round_index) or not _is_index(match_index):
        raise MatchNotFound(round_index, match_index)
    if not 0 <= round_index < len(bracket.rounds):
        raise MatchNotFound(round_index, match_index)
    round_matches = bracket.rounds[round_index]
    if not 0 <= match_index < len(round_matches):
        raise MatchNotFound(round_index, match_index)
    return round_matches[match_index]


def _check_winner(match: Match, winner):
    if winner not in (match.team1, match.team2) or winner == TBD:
        raise InvalidWinner(winner, match.team1, match.team2)
    # A bye only "wins" when nobody real is in the match
    if winner == BYE and (match.team1 != BYE or match.team2 != BYE):
        raise InvalidWinner(winner, match.team1, match.team2)


def _is_final(bracket: Bracket, round_index: int) -> bool:
    return round_index == len(bracket.rounds) - 1 and len(bracket.rounds[round_index]) == 1


def _next_match(bracket: Bracket, round_index: int, match_index: int, rng) -> Match:
    """Next-round match fed by this one, allocated if the bracket was built lazily."""
    next_round_index = round_index + 1
    expected = math.ceil(len(bracket.rounds[round_index]) / 2)
    if next_round_index >= len(bracket.rounds):
        bracket.rounds.append([])
    next_round = bracket.rounds[next_round_index]
    while len(next_round) < expected:
        next_round.append(Match(code=generate_match_code(rng)))
    return next_round[match_index // 2]


def report_result(bracket: Bracket, round_index: int, match_index: int, winner: str,
                  rng: Optional[random.Random] = None) -> ReportOutcome:
    """
    Record the winner of a match and forward them into the next round.

    The winner of match k lands in team1 of next-round match k // 2 when k is
    even, team2 when k is odd. Reporting the single match of the last round
    completes the tournament.

    Reporting the same winner again is a no-op. Reporting a different winner
    for a decided match raises MatchAlreadyDecided, and reporting a match that
    still has a TBD slot raises MatchNotReady. On any error the bracket is
    left untouched.
    """
    match = get_match(bracket, round_index, match_index)
    final = _is_final(bracket, round_index)

    if match.winner is not None:
        if match.winner != winner:
            raise MatchAlreadyDecided(match.winner, winner)
        if final:
            return ReportOutcome(bracket, completed=True, champion=winner)
        return ReportOutcome(bracket)

    if match.state != READY:
        raise MatchNotReady(round_index, match_index)
    _check_winner(match, winner)
    match.winner = winner

    if final:
        return ReportOutcome(bracket, completed=True, champion=winner)

    next_match = _next_match(bracket, round_index, match_index, rng or random)
    if match_index % 2 == 0:
        next_match.team1 = winner
    else:
        next_match.team2 = winner

    return ReportOutcome(bracket)
