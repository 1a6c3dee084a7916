"""
derby_ranking.py

Per-class orderings, finalist and wildcard selection, and place numbering
with the grand-finals-winner exclusion rule.

Orderings use a stable sort on the selected average, so racers with equal
times keep the order in which they appear in the merged table. Place
numbers are trophy labels only; the statistical order is never changed.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from derby_classes import class_sort_index
from derby_config import Config
from derby_merge import RacerKey
from derby_stats import RacerClassStats

logger = logging.getLogger(__name__)


@dataclass
class RankingOptions:
    """Caller-selected ranking policy."""
    avg_method: str = Config.DEFAULT_AVG_METHOD
    finals_field_size: int = Config.FINALS_FIELD_SIZE
    exclude_finals_winners: bool = Config.EXCLUDE_FINALS_WINNERS
    num_finals_winners: int = Config.NUM_FINALS_WINNERS
    finals_class: str = Config.FINALS_CLASS

    def __post_init__(self):
        if self.avg_method not in Config.AVG_METHODS:
            raise ValueError(
                f"Unknown averaging method '{self.avg_method}' "
                f"(expected one of: {', '.join(Config.AVG_METHODS)})"
            )
        if self.finals_field_size < 0 or self.num_finals_winners < 0:
            raise ValueError("finals_field_size and num_finals_winners must not be negative")

    @property
    def scoring_key(self) -> str:
        return Config.AVG_METHODS[self.avg_method]


@dataclass
class RankedRow:
    stats: RacerClassStats
    place: Optional[int] = None
    excluded: bool = False
    finalist: bool = False
    wildcard: bool = False
    origin_stats: Optional[RacerClassStats] = None

    @property
    def racer_key(self) -> RacerKey:
        return self.stats.racer_key

    @property
    def origin_class(self) -> Optional[str]:
        """Den class of a finals entrant, taken from their first den record."""
        return self.origin_stats.class_name if self.origin_stats else None

    @property
    def label(self) -> str:
        if self.finalist:
            return "finalist"
        if self.wildcard:
            return "wildcard"
        return ""

    @property
    def trophy_place(self) -> bool:
        return self.place is not None and self.place <= Config.TROPHY_PLACES


@dataclass
class ClassRanking:
    class_name: str
    rows: List[RankedRow] = field(default_factory=list)

    @property
    def finishers(self) -> List[RankedRow]:
        return [r for r in self.rows if r.stats.finished]


@dataclass
class RankingResult:
    options: RankingOptions
    classes: List[ClassRanking] = field(default_factory=list)
    finalists: List[RacerKey] = field(default_factory=list)
    wildcards: List[RacerKey] = field(default_factory=list)
    excluded_winners: List[RacerKey] = field(default_factory=list)

    def for_class(self, class_name: str) -> Optional[ClassRanking]:
        for ranking in self.classes:
            if ranking.class_name == class_name:
                return ranking
        return None

    @property
    def den_classes(self) -> List[ClassRanking]:
        return [c for c in self.classes if c.class_name != self.options.finals_class]

    @property
    def finals_results(self) -> List[RankedRow]:
        finals = self.for_class(self.options.finals_class)
        return finals.rows if finals else []

    @property
    def racer_count(self) -> int:
        """Distinct racer keys across den classes; finals entries are not counted again."""
        return len({r.racer_key for c in self.den_classes for r in c.rows})

    def den_vs_finals(self) -> List[Tuple[RacerKey, float, float]]:
        """(racer key, den score, finals score) for finals finishers with a finished den record."""
        key = self.options.scoring_key
        pairs = []
        for row in self.finals_results:
            if row.stats.finished and row.origin_stats is not None and row.origin_stats.finished:
                pairs.append((row.racer_key, row.origin_stats.score(key), row.stats.score(key)))
        return pairs


def rank_class(stats: List[RacerClassStats], scoring_key: str) -> List[RacerClassStats]:
    """Ascending stable sort by scoring_key; racers without a finished heat go last."""
    finishers = [s for s in stats if s.finished]
    non_finishers = [s for s in stats if not s.finished]
    return sorted(finishers, key=lambda s: s.score(scoring_key)) + non_finishers


def assign_places(ordered: List[RacerClassStats], excluded_keys=()) -> List[Optional[int]]:
    """Place numbers for an ordered class, skipping excluded racers.

    The place of row i is i minus the excluded rows before it, plus one.
    Excluded racers and racers without a finished heat get no place.
    """
    excluded = set(excluded_keys)
    places = []
    next_place = 1
    for s in ordered:
        if not s.finished or s.racer_key in excluded:
            places.append(None)
            continue
        places.append(next_place)
        next_place += 1
    return places


def select_finalists(ordered_by_class: Dict[str, List[RacerClassStats]],
                     den_classes: List[str]) -> List[RacerKey]:
    """Top finisher of every den class, in den order.

    One entry per den even when the same racer key tops two dens; that
    racer is already reported as an identity error by the sanity check.
    """
    finalists = []
    for class_name in den_classes:
        finishers = [s for s in ordered_by_class.get(class_name, []) if s.finished]
        if finishers:
            finalists.append(finishers[0].racer_key)
    return finalists


def select_wildcards(ordered_by_class: Dict[str, List[RacerClassStats]], den_classes: List[str],
                     finalists: List[RacerKey], scoring_key: str,
                     finals_field_size: int = Config.FINALS_FIELD_SIZE) -> List[RacerKey]:
    """Fastest non-finalists across all dens, filling the finals field."""
    count = max(0, finals_field_size - len(finalists))
    finalist_set = set(finalists)
    pool = [
        s
        for class_name in den_classes
        for s in ordered_by_class.get(class_name, [])
        if s.finished and s.racer_key not in finalist_set
    ]
    pool.sort(key=lambda s: s.score(scoring_key))

    wildcards = []
    for s in pool:
        if len(wildcards) >= count:
            break
        if s.racer_key not in wildcards:
            wildcards.append(s.racer_key)
    return wildcards


def select_excluded_winners(finals_ordered: List[RacerClassStats], num_winners: int) -> List[RacerKey]:
    """Fastest finishers of the finals class, matched across classes by racer key."""
    finishers = [s for s in finals_ordered if s.finished]
    return [s.racer_key for s in finishers[:num_winners]]


def rank_results(stats: List[RacerClassStats], options: Optional[RankingOptions] = None) -> RankingResult:
    """Rank every class and derive the award lists."""
    options = options or RankingOptions()
    key = options.scoring_key
    result = RankingResult(options=options)

    class_names = sorted({s.class_name for s in stats}, key=class_sort_index)
    ordered_by_class = {
        name: rank_class([s for s in stats if s.class_name == name], key)
        for name in class_names
    }
    den_classes = [c for c in class_names if c != options.finals_class]

    result.finalists = select_finalists(ordered_by_class, den_classes)
    result.wildcards = select_wildcards(
        ordered_by_class, den_classes, result.finalists, key, options.finals_field_size
    )
    if options.exclude_finals_winners:
        result.excluded_winners = select_excluded_winners(
            ordered_by_class.get(options.finals_class, []), options.num_finals_winners
        )

    den_origin = {}
    for class_name in den_classes:
        for s in ordered_by_class[class_name]:
            den_origin.setdefault(s.racer_key, s)

    wildcard_set = set(result.wildcards)
    excluded_set = set(result.excluded_winners)

    for class_name in class_names:
        ordered = ordered_by_class[class_name]
        is_finals = class_name == options.finals_class
        places = assign_places(ordered, () if is_finals else excluded_set)
        ranking = ClassRanking(class_name=class_name)
        for s, place in zip(ordered, places):
            ranking.rows.append(RankedRow(
                stats=s,
                place=place,
                excluded=not is_finals and s.racer_key in excluded_set,
                finalist=not is_finals and s.finished and s is ordered[0],
                wildcard=not is_finals and s.finished and s.racer_key in wildcard_set,
                origin_stats=den_origin.get(s.racer_key) if is_finals else None,
            ))
        result.classes.append(ranking)

    logger.info("Ranked %d classes: %d finalists, %d wildcards, %d excluded finals winners",
                len(result.classes), len(result.finalists), len(result.wildcards),
                len(result.excluded_winners))
    return result
