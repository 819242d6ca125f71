"""
Single elimination bracket generation.
"""
import math
import random
from typing import List, Optional, Sequence

from knockout.errors import InvalidEntrantCount
from knockout.models import BYE, TBD, Bracket, Match


def get_round_name(matches_in_round: int) -> str:
    """Get the name of a round based on the number of matches in it."""
    teams_in_round = matches_in_round * 2
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_teams))


def calculate_byes(num_teams: int) -> int:
    """Calculate number of byes needed."""
    return calculate_bracket_size(num_teams) - num_teams


def calculate_total_rounds(num_teams: int) -> int:
    """Number of rounds needed to reduce num_teams to a single champion."""
    bracket_size = calculate_bracket_size(num_teams)
    if bracket_size < 2:
        return 0
    return int(math.log2(bracket_size))


def validate_entrant_count(entrants: Sequence[str]):
    """Admission check run before a tournament is started."""
    if len(entrants) < 2:
        raise InvalidEntrantCount(len(entrants))


def generate_match_code(rng: Optional[random.Random] = None) -> str:
    """Random 5-digit match code, digits only."""
    rng = rng or random
    return str(rng.randint(10000, 99999))


def shuffle_entrants(entrants: Sequence[str], rng: random.Random) -> List[str]:
    """Return a Fisher-Yates shuffled copy of entrants."""
    shuffled = list(entrants)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def _first_round_match(team1, team2, rng: random.Random) -> Match:
    if not team1:
        team1 = TBD
    if not team2:
        team2 = TBD if team1 == BYE else BYE
    return Match(team1=team1, team2=team2, code=generate_match_code(rng))


def build_bracket(entrants: Sequence[str], seed=None, rng: Optional[random.Random] = None) -> Bracket:
    """
    Build a complete single elimination bracket.

    Entrants are shuffled, padded with BYE up to the next power of two and
    paired off in order for the first round. Later rounds are created with TBD
    slots; they are filled in as results are reported.

    Args:
        entrants: Entrant display names. The caller must ensure there are at
            least two (see validate_entrant_count).
        seed: Optional seed. The same entrants and seed always produce the
            same bracket, match codes included.
        rng: Optional random source, used instead of seed when given.

    BYE matches are left for an explicit report; they are not auto-advanced.
    """
    if rng is None:
        rng = random.Random(seed)

    shuffled = shuffle_entrants(entrants, rng)
    bracket_size = calculate_bracket_size(len(shuffled))

    padded = shuffled + [BYE] * (bracket_size - len(shuffled))

    first_round = []
    for i in range(0, len(padded), 2):
        team1 = padded[i]
        team2 = padded[i + 1] if i + 1 < len(padded) else None
        first_round.append(_first_round_match(team1, team2, rng))

    rounds = [first_round]
    while len(rounds[-1]) > 1:
        num_matches = math.ceil(len(rounds[-1]) / 2)
        rounds.append([Match(code=generate_match_code(rng)) for _ in range(num_matches)])

    return Bracket(rounds=rounds)
