"""
derby_classes.py

Standard class vocabulary and raw class label mapping.

Every raw class label seen in any source file must have an explicit entry in
the class mapping (a standard class name or Config.SKIP_CLASS) before records
are merged. guess_standard_class() only produces suggestions.
"""

import logging
from typing import Dict, Iterable, List, Optional

from derby_config import Config

logger = logging.getLogger(__name__)


class ClassMappingError(ValueError):
    """Raised when raw class labels cannot be mapped to standard classes."""

    def __init__(self, missing: List[str], invalid: Optional[Dict[str, str]] = None):
        self.missing = list(missing)
        self.invalid = dict(invalid or {})
        parts = []
        if self.missing:
            parts.append("no mapping for class label(s): " + ", ".join(repr(m) for m in self.missing))
        if self.invalid:
            parts.append("unknown target class for: " + ", ".join(
                f"{label!r} -> {target!r}" for label, target in self.invalid.items()
            ))
        super().__init__("; ".join(parts) or "invalid class mapping")


def is_standard_class(name) -> bool:
    return name in Config.STANDARD_CLASS_NAMES


def class_sort_index(name) -> int:
    """Position of a class in display order; unknown names sort last."""
    try:
        return Config.STANDARD_CLASS_NAMES.index(name)
    except ValueError:
        return len(Config.STANDARD_CLASS_NAMES)


def den_class_names(finals_class: str = Config.FINALS_CLASS) -> List[str]:
    """Standard classes other than the finals tier, in display order."""
    return [c for c in Config.STANDARD_CLASS_NAMES if c != finals_class]


def guess_standard_class(label) -> Optional[str]:
    """Best-effort guess of the standard class for a raw label (advisory only)."""
    if label is None:
        return None
    lowered = str(label).strip().lower()
    if not lowered:
        return None
    if any(k in lowered for k in Config.SKIP_KEYWORDS):
        return Config.SKIP_CLASS
    for standard_name, keywords in Config.CLASS_KEYWORDS:
        if any(k in lowered for k in keywords):
            return standard_name
    return None


def suggest_class_mapping(labels: Iterable[str]) -> Dict[str, str]:
    """Return guesses for every label that matches a keyword family."""
    suggestions = {}
    for label in labels:
        guess = guess_standard_class(label)
        if guess is not None:
            suggestions[label] = guess
        else:
            logger.debug("No class guess for label '%s'", label)
    return suggestions


def collect_unique_classes(label_lists: Iterable[Iterable[str]]) -> List[str]:
    """Distinct raw labels across all sources, in first-seen order."""
    seen = {}
    for labels in label_lists:
        for label in labels:
            if label not in seen:
                seen[label] = True
    return list(seen)


def check_mapping_complete(labels: Iterable[str], mapping: Dict[str, str]) -> None:
    """Raise ClassMappingError unless every label maps to a standard class or the skip sentinel."""
    missing = []
    invalid = {}
    for label in labels:
        if label not in mapping or mapping[label] in (None, ""):
            if label not in missing:
                missing.append(label)
            continue
        target = mapping[label]
        if target != Config.SKIP_CLASS and not is_standard_class(target):
            invalid[label] = target
    if missing or invalid:
        raise ClassMappingError(missing, invalid)


def duplicate_targets(mapping: Dict[str, str]) -> Dict[str, List[str]]:
    """Standard classes that more than one raw label maps to."""
    by_target = {}
    for label, target in mapping.items():
        if target == Config.SKIP_CLASS or not is_standard_class(target):
            continue
        by_target.setdefault(target, []).append(label)
    return {target: labels for target, labels in by_target.items() if len(labels) > 1}
