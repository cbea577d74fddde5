"""ELO rating update with a dynamic K-factor."""

from typing import Tuple

from arenasettle.finance.pnl import round_half_up

PROVISIONAL_GAMES = 30
K_PROVISIONAL     = 40
K_ESTABLISHED     = 32
RATING_FLOOR      = 100


def k_factor(games_played: int) -> int:
    return K_PROVISIONAL if games_played < PROVISIONAL_GAMES else K_ESTABLISHED


def expected_score(rating: float, opponent: float) -> float:
    return 1 / (1 + 10 ** ((opponent - rating) / 400))


def elo(
    winner_rating: float,
    loser_rating: float,
    winner_games: int,
    loser_games: int,
) -> Tuple[int, int]:
    """
    Returns (new_winner_rating, new_loser_rating).

    The loser never drops below RATING_FLOOR.
    """
    expected_winner = expected_score(winner_rating, loser_rating)
    expected_loser  = 1 - expected_winner

    new_winner = round_half_up(winner_rating + k_factor(winner_games) * (1 - expected_winner))
    new_loser  = max(
        RATING_FLOOR,
        round_half_up(loser_rating + k_factor(loser_games) * (0 - expected_loser)),
    )
    return new_winner, new_loser
