"""Table-driven market interpretation.

A market name is normalized and matched against anchored patterns to a
MarketKind (plus an optional round number). Each event type registers one
resolver per kind; a resolver answers whether a selection label won against
a finished outcome. Anything that cannot be interpreted raises
UnresolvableMarket so the caller can leave the leg pending.
"""

import re
from enum import Enum
from typing import Callable, Union

from virtuals.errors import UnresolvableMarket
from virtuals.simulation.duel import DuelOutcome
from virtuals.simulation.quiz import QuizOutcome

Outcome = Union[QuizOutcome, DuelOutcome]
Resolver = Callable[[Outcome, str, int | None], bool]


class MarketKind(str, Enum):
    MATCH_WINNER = "match_winner"
    TOTAL_POINTS = "total_points"
    WINNING_MARGIN = "winning_margin"
    ROUND_WINNER = "round_winner"
    LEADER_AFTER_ROUND = "leader_after_round"
    PERFECT_ROUND = "perfect_round"
    SHUTOUT_ROUND = "shutout_round"
    FIRST_BONUS = "first_bonus"
    FASTEST_BUZZ = "fastest_buzz"
    LATE_SURGE = "late_surge"
    STRONG_START = "strong_start"
    HIGHEST_SCORING_ROUND = "highest_scoring_round"
    LEAD_CHANGES = "lead_changes"
    COMEBACK_WIN = "comeback_win"
    TOTAL_MATCH_SCORE = "total_match_score"
    TOTAL_BULLS = "total_bulls"
    TOTAL_TRIPLES = "total_triples"
    PERFECT_THROW = "perfect_throw"


def normalize_market_name(name: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return " ".join(name.lower().split())


# Matched with fullmatch against the normalized name, in order.
MARKET_PATTERNS: tuple[tuple[re.Pattern[str], MarketKind], ...] = tuple(
    (re.compile(pattern), kind)
    for pattern, kind in (
        (r"(?:match )?winner|1x2", MarketKind.MATCH_WINNER),
        (r"total points", MarketKind.TOTAL_POINTS),
        (r"winning margin", MarketKind.WINNING_MARGIN),
        (r"round (?P<round>[1-5]) winner", MarketKind.ROUND_WINNER),
        (r"leader after round (?P<round>[1-5])", MarketKind.LEADER_AFTER_ROUND),
        (r"perfect round(?: (?P<round>[1-5]))?", MarketKind.PERFECT_ROUND),
        (r"shutout round", MarketKind.SHUTOUT_ROUND),
        (r"first bonus", MarketKind.FIRST_BONUS),
        (r"fastest buzz", MarketKind.FASTEST_BUZZ),
        (r"late surge", MarketKind.LATE_SURGE),
        (r"strong start", MarketKind.STRONG_START),
        (r"highest scoring round", MarketKind.HIGHEST_SCORING_ROUND),
        (r"lead changes", MarketKind.LEAD_CHANGES),
        (r"comeback win", MarketKind.COMEBACK_WIN),
        (r"total match score", MarketKind.TOTAL_MATCH_SCORE),
        (r"total bulls", MarketKind.TOTAL_BULLS),
        (r"total triples", MarketKind.TOTAL_TRIPLES),
        (r"any player perfect throw(?: \(180\))?", MarketKind.PERFECT_THROW),
    )
)

_OVER_UNDER = re.compile(r"(?P<side>over|under) (?P<line>\d+(?:\.\d+)?)")
_BAND = re.compile(r"(?P<low>\d+)\s*-\s*(?P<high>\d+)")
_OPEN_BAND = re.compile(r"(?P<low>\d+)\s*\+")
_ROUND_LABEL = re.compile(r"round (?P<round>[1-5])")


def interpret_market(name: str) -> tuple[MarketKind, int | None]:
    """Map a market name to its kind and optional round number.

    Raises:
        UnresolvableMarket: If no pattern matches the full normalized name
    """
    normalized = normalize_market_name(name)
    for pattern, kind in MARKET_PATTERNS:
        match = pattern.fullmatch(normalized)
        if match:
            round_text = match.groupdict().get("round")
            return kind, int(round_text) if round_text else None
    raise UnresolvableMarket(name, reason="unknown market")


# ---------------------------------------------------------------------------
# Label parsers
# ---------------------------------------------------------------------------


def _over_under(actual: float, label: str, market: str) -> bool:
    match = _OVER_UNDER.fullmatch(normalize_market_name(label))
    if not match:
        raise UnresolvableMarket(market, label, "expected 'Over X' or 'Under X'")
    line = float(match.group("line"))
    if match.group("side") == "over":
        return actual > line
    return actual < line


def _yes_no(flag: bool, label: str, market: str) -> bool:
    answer = normalize_market_name(label)
    if answer == "yes":
        return flag
    if answer == "no":
        return not flag
    raise UnresolvableMarket(market, label, "expected 'Yes' or 'No'")


def _participant_index(names: tuple[str, ...], label: str, market: str) -> int:
    wanted = normalize_market_name(label)
    for idx, name in enumerate(names):
        if normalize_market_name(name) == wanted:
            return idx
    raise UnresolvableMarket(market, label, "not a participant of this event")


def _round_label(label: str, market: str) -> int:
    match = _ROUND_LABEL.fullmatch(normalize_market_name(label))
    if not match:
        raise UnresolvableMarket(market, label, "expected 'Round N'")
    return int(match.group("round"))


def _in_band(value: int, label: str, market: str) -> bool:
    text = normalize_market_name(label)
    match = _BAND.fullmatch(text)
    if match:
        return int(match.group("low")) <= value <= int(match.group("high"))
    match = _OPEN_BAND.fullmatch(text)
    if match:
        return value >= int(match.group("low"))
    raise UnresolvableMarket(market, label, "expected a band like '1-10' or '26+'")


def _require_round(round_number: int | None, market: str) -> int:
    if round_number is None:
        raise UnresolvableMarket(market, reason="round number missing")
    return round_number


# ---------------------------------------------------------------------------
# Quiz resolvers
# ---------------------------------------------------------------------------


def _quiz_winner(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
    return _participant_index(outcome.participants, label, "Match Winner") == outcome.winner_index


def _quiz_total_points(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
    return _over_under(outcome.total_points, label, "Total Points")


def _quiz_winning_margin(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
    return _in_band(outcome.stats.winning_margin, label, "Winning Margin")


def _quiz_round_winner(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
    n = _require_round(round_number, "Round Winner")
    idx = _participant_index(outcome.participants, label, f"Round {n} Winner")
    scores = outcome.main_rounds[n - 1].scores
    top = max(scores)
    # A shared top score has no round winner
    return scores[idx] == top and scores.count(top) == 1


def _quiz_leader_after_round(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
    n = _require_round(round_number, "Leader After Round")
    idx = _participant_index(outcome.participants, label, f"Leader After Round {n}")
    return outcome.stats.leader_after_round[n - 1] == idx


def _quiz_perfect_round(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
    if round_number is None:
        return _yes_no(outcome.stats.any_perfect, label, "Perfect Round")
    return _yes_no(outcome.stats.perfect_in_round(round_number), label, f"Perfect Round {round_number}")


def _quiz_shutout_round(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
    return _yes_no(outcome.stats.any_shutout, label, "Shutout Round")


def _award(attribute: str, market: str) -> Resolver:
    def resolve(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
        return _participant_index(outcome.participants, label, market) == getattr(outcome.stats, attribute)

    return resolve


def _quiz_highest_round(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
    return _round_label(label, "Highest Scoring Round") == outcome.stats.highest_round_index + 1


def _quiz_lead_changes(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
    return _over_under(outcome.stats.lead_changes, label, "Lead Changes")


def _quiz_comeback(outcome: QuizOutcome, label: str, round_number: int | None) -> bool:
    return _yes_no(outcome.stats.comeback_win, label, "Comeback Win")


QUIZ_RESOLVERS: dict[MarketKind, Resolver] = {
    MarketKind.MATCH_WINNER: _quiz_winner,
    MarketKind.TOTAL_POINTS: _quiz_total_points,
    MarketKind.WINNING_MARGIN: _quiz_winning_margin,
    MarketKind.ROUND_WINNER: _quiz_round_winner,
    MarketKind.LEADER_AFTER_ROUND: _quiz_leader_after_round,
    MarketKind.PERFECT_ROUND: _quiz_perfect_round,
    MarketKind.SHUTOUT_ROUND: _quiz_shutout_round,
    MarketKind.FIRST_BONUS: _award("first_bonus_index", "First Bonus"),
    MarketKind.FASTEST_BUZZ: _award("fastest_buzz_index", "Fastest Buzz"),
    MarketKind.LATE_SURGE: _award("late_surge_index", "Late Surge"),
    MarketKind.STRONG_START: _award("strong_start_index", "Strong Start"),
    MarketKind.HIGHEST_SCORING_ROUND: _quiz_highest_round,
    MarketKind.LEAD_CHANGES: _quiz_lead_changes,
    MarketKind.COMEBACK_WIN: _quiz_comeback,
}


# ---------------------------------------------------------------------------
# Duel resolvers
# ---------------------------------------------------------------------------


def _duel_winner(outcome: DuelOutcome, label: str, round_number: int | None) -> bool:
    idx = _participant_index((outcome.player_a, outcome.player_b), label, "Match Winner")
    return outcome.winner == ("A" if idx == 0 else "B")


def _duel_total_score(outcome: DuelOutcome, label: str, round_number: int | None) -> bool:
    return _over_under(outcome.total_score, label, "Total Match Score")


def _duel_total_bulls(outcome: DuelOutcome, label: str, round_number: int | None) -> bool:
    return _over_under(outcome.total_bulls, label, "Total Bulls")


def _duel_total_triples(outcome: DuelOutcome, label: str, round_number: int | None) -> bool:
    return _over_under(outcome.total_triples, label, "Total Triples")


def _duel_perfect_throw(outcome: DuelOutcome, label: str, round_number: int | None) -> bool:
    return _yes_no(outcome.any_perfect, label, "Any Player Perfect Throw (180)")


def _duel_highest_round(outcome: DuelOutcome, label: str, round_number: int | None) -> bool:
    return _round_label(label, "Highest Scoring Round") == outcome.highest_round


def _duel_late_surge(outcome: DuelOutcome, label: str, round_number: int | None) -> bool:
    idx = _participant_index((outcome.player_a, outcome.player_b), label, "Late Surge")
    return outcome.late_surge_a if idx == 0 else outcome.late_surge_b


DUEL_RESOLVERS: dict[MarketKind, Resolver] = {
    MarketKind.MATCH_WINNER: _duel_winner,
    MarketKind.TOTAL_MATCH_SCORE: _duel_total_score,
    MarketKind.TOTAL_BULLS: _duel_total_bulls,
    MarketKind.TOTAL_TRIPLES: _duel_total_triples,
    MarketKind.PERFECT_THROW: _duel_perfect_throw,
    MarketKind.HIGHEST_SCORING_ROUND: _duel_highest_round,
    MarketKind.LATE_SURGE: _duel_late_surge,
}


def resolvers_for(outcome: Outcome) -> dict[MarketKind, Resolver]:
    if isinstance(outcome, DuelOutcome):
        return DUEL_RESOLVERS
    return QUIZ_RESOLVERS


def market_wins(outcome: Outcome, market_name: str, label: str) -> bool:
    """Whether ``label`` won ``market_name`` against ``outcome``.

    Raises:
        UnresolvableMarket: If the market or label cannot be interpreted
    """
    kind, round_number = interpret_market(market_name)
    resolver = resolvers_for(outcome).get(kind)
    if resolver is None:
        raise UnresolvableMarket(market_name, label, f"no {kind.value} resolver for this event type")
    try:
        return resolver(outcome, label, round_number)
    except UnresolvableMarket as e:
        # Re-raise with the caller's market name
        raise UnresolvableMarket(market_name, label, e.reason) from e
