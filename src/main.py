# Command line entry point: build and print a knockout bracket from a list of entrants

import argparse
import os
import sys
import yaml
from knockout.elimination import build_bracket, validate_entrant_count, get_round_name, calculate_byes
from knockout.errors import InvalidEntrantCount


def load_entrants(file_path):
    """Entrants file is either a YAML list of names or a mapping with a 'teams' list."""
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file)
    if not data:
        return []
    if isinstance(data, dict):
        data = data.get('teams', [])
    entrants = []
    for entry in data:
        name = entry.get('name') if isinstance(entry, dict) else entry
        if name:
            entrants.append(str(name).strip())
    return entrants


def print_bracket(bracket):
    for round_index, round_matches in enumerate(bracket.rounds):
        if round_index:
            print()
        print(f"# Round {round_index + 1} - {get_round_name(len(round_matches))}")
        for match in round_matches:
            print(f"{match.team1} vs {match.team2}  [code {match.code}]")


def main(argv=None):
    script_dir = os.path.dirname(__file__)
    base_dir = os.path.dirname(script_dir)

    parser = argparse.ArgumentParser(description='Build a single elimination bracket.')
    parser.add_argument('entrants_file', nargs='?', default=os.path.join(base_dir, 'data', 'entrants.yaml'),
                        help='YAML file listing entrant names')
    parser.add_argument('--seed', help='Seed for a reproducible draw')
    args = parser.parse_args(argv)

    entrants = load_entrants(args.entrants_file)
    try:
        validate_entrant_count(entrants)
    except InvalidEntrantCount as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    bracket = build_bracket(entrants, seed=args.seed)
    print(f"{len(entrants)} entrants, {calculate_byes(len(entrants))} byes, {len(bracket.rounds)} rounds")
    print()
    print_bracket(bracket)
    return 0


if __name__ == '__main__':
    sys.exit(main())
