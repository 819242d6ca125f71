BYE = 'BYE'
TBD = 'TBD'

PENDING = 'pending'
READY = 'ready'
DECIDED = 'decided'


class Match:
    def __init__(self, team1=TBD, team2=TBD, code=None, winner=None):
        self.team1 = team1
        self.team2 = team2
        self.code = code
        self.winner = winner

    @property
    def state(self):
        """Return 'pending', 'ready' or 'decided'."""
        if self.winner is not None:
            return DECIDED
        if self.team1 == TBD or self.team2 == TBD:
            return PENDING
        return READY

    def to_dict(self):
        return {
            'team1': self.team1,
            'team2': self.team2,
            'code': self.code,
            'winner': self.winner,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            team1=data.get('team1') or TBD,
            team2=data.get('team2') or TBD,
            code=data.get('code'),
            winner=data.get('winner'),
        )

    def __eq__(self, other):
        if not isinstance(other, Match):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"Match(team1={self.team1}, team2={self.team2}, code={self.code}, winner={self.winner})"


class Bracket:
    def __init__(self, rounds=None, version=0):
        self.rounds = rounds if rounds else []  # list of rounds, each a list of Match
        self.version = version

    @property
    def final(self):
        """The last round's match, or None for an empty bracket."""
        if not self.rounds or not self.rounds[-1]:
            return None
        return self.rounds[-1][0]

    @property
    def champion(self):
        final = self.final
        if final is None or len(self.rounds[-1]) != 1:
            return None
        return final.winner

    def to_list(self):
        return [[match.to_dict() for match in round_matches] for round_matches in self.rounds]

    @classmethod
    def from_list(cls, data, version=0):
        rounds = [[Match.from_dict(m) for m in round_matches] for round_matches in (data or [])]
        return cls(rounds=rounds, version=version)

    def __eq__(self, other):
        if not isinstance(other, Bracket):
            return NotImplemented
        return self.rounds == other.rounds

    def __repr__(self):
        sizes = [len(r) for r in self.rounds]
        return f"Bracket(rounds={sizes}, version={self.version})"


def match_state(match: Match) -> str:
    """State of a match in its pending -> ready -> decided lifecycle."""
    return match.state
