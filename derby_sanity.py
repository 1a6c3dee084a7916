"""
derby_sanity.py

Identity checks on the canonical record table. Each racer key should race
in exactly one den class; problems are reported as findings and never
resolved automatically.
"""

import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np
import pandas as pd

from derby_classes import class_sort_index
from derby_config import Config
from derby_merge import IDENTITY_COLUMNS, RacerKey

logger = logging.getLogger(__name__)

ERROR = "error"
WARNING = "warning"
INFO = "info"

_LOG_LEVELS = {ERROR: logging.ERROR, WARNING: logging.WARNING, INFO: logging.INFO}


@dataclass(frozen=True)
class Finding:
    """One sanity check observation about a racer."""
    severity: str
    category: str
    racer_key: RacerKey
    message: str
    classes: tuple = ()


@dataclass
class SanityReport:
    findings: List[Finding] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not any(f.severity == ERROR for f in self.findings)

    @property
    def errors(self) -> List[Finding]:
        return [f for f in self.findings if f.severity == ERROR]

    @property
    def warnings(self) -> List[Finding]:
        return [f for f in self.findings if f.severity == WARNING]

    @property
    def infos(self) -> List[Finding]:
        return [f for f in self.findings if f.severity == INFO]


def _display(key: RacerKey) -> str:
    return f"{key.first_name} {key.last_name} (#{key.car_number})"


def check_identities(table: pd.DataFrame, finals_class: str = Config.FINALS_CLASS) -> SanityReport:
    """Check that every racer key belongs to exactly one non-finals class.

    - more than one den class: error (stats for that racer are ambiguous)
    - finals only, no den record: warning
    - no finished heat in any class: info
    """
    report = SanityReport()
    if table is None or table.empty:
        return report

    times = pd.to_numeric(table["FinishTime"], errors="coerce").to_numpy(dtype=float)
    finished = pd.Series(np.isfinite(times) & (times > 0), index=table.index)

    for _, group in table.groupby(IDENTITY_COLUMNS, sort=False):
        key = RacerKey.from_row(group.iloc[0])
        classes = list(pd.unique(group["Class"]))
        den_classes = sorted((c for c in classes if c != finals_class), key=class_sort_index)

        if len(den_classes) > 1:
            report.findings.append(Finding(
                severity=ERROR,
                category="multiple_classes",
                racer_key=key,
                classes=tuple(den_classes),
                message=f"{_display(key)} appears in multiple classes: {', '.join(den_classes)}",
            ))
        elif not den_classes and finals_class in classes:
            report.findings.append(Finding(
                severity=WARNING,
                category="finals_only",
                racer_key=key,
                classes=(finals_class,),
                message=f"{_display(key)} raced in {finals_class} but has no den class record",
            ))

        if not finished.loc[group.index].any():
            report.findings.append(Finding(
                severity=INFO,
                category="no_finished_heats",
                racer_key=key,
                classes=tuple(sorted(classes, key=class_sort_index)),
                message=f"{_display(key)} is registered but never finished a heat",
            ))

    for finding in report.findings:
        logger.log(_LOG_LEVELS[finding.severity], "Sanity check: %s", finding.message)
    if report.is_valid:
        logger.info("Sanity check passed (%d notes)", len(report.findings))
    else:
        logger.error("Sanity check found %d identity error(s); results are not authoritative",
                     len(report.errors))
    return report
