# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Data quality profiling.

Profiles are snapshots: every call recomputes all statistics from the full
row set it is given. Percentages here are on a 0-100 scale.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from quarry.analysis.schema_detector import hashable
from quarry.catalog.file.parser import is_null, to_number
from quarry.core.models import ColumnDefinition, DataType, NUMERIC_TYPES

logger = logging.getLogger(__name__)

DISTINCT_VALUES_LIMIT = 10
SAMPLE_VALUES_LIMIT = 5
OUTLIER_Z_SCORE = 3.0
OUTLIER_MIN_SHARE = 0.05

SEVERITY_PENALTY = {"high": 10, "medium": 5, "low": 2}


@dataclass
class QualityIssue:
    type: str  # missing | duplicate | invalid | inconsistent | outlier
    severity: str  # low | medium | high
    message: str
    column: Optional[str] = None
    count: Optional[int] = None
    percentage: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "severity": self.severity,
            "column": self.column,
            "message": self.message,
            "count": self.count,
            "percentage": self.percentage,
        }


@dataclass
class ColumnProfile:
    column_name: str
    data_type: str
    null_count: int
    null_percentage: float
    unique_count: int
    unique_percentage: float
    duplicate_count: int
    min: Any = None
    max: Any = None
    mean: Optional[float] = None
    median: Optional[float] = None
    mode: Any = None
    standard_deviation: Optional[float] = None
    distinct_values: list[Any] = field(default_factory=list)
    sample_values: list[Any] = field(default_factory=list)
    quality_score: float = 100.0
    issues: list[QualityIssue] = field(default_factory=list)


@dataclass
class QualityScore:
    overall: float
    completeness: float
    uniqueness: float
    validity: float
    consistency: float
    issues: list[QualityIssue] = field(default_factory=list)


@dataclass
class DataProfile:
    column_profiles: list[ColumnProfile]
    overall_quality: QualityScore
    row_count: int
    duplicate_rows: int
    completeness: float
    uniqueness: float
    validity: float
    consistency: float


@dataclass
class QualityReport:
    summary: str
    recommendations: list[str]
    critical_issues: list[QualityIssue]


def _as_number(value: float, data_type: str):
    if data_type == DataType.INTEGER and float(value).is_integer():
        return int(value)
    return float(value)


def _numeric_stats(present: list[Any], data_type: str) -> dict:
    numbers = [n for n in (to_number(v) for v in present) if n is not None]
    if not numbers:
        return {}
    arr = np.array(numbers, dtype=float)
    mode_value, _ = Counter(numbers).most_common(1)[0]
    return {
        "min": _as_number(arr.min(), data_type),
        "max": _as_number(arr.max(), data_type),
        "mean": float(arr.mean()),
        "median": float(np.median(arr)),
        "mode": _as_number(mode_value, data_type),
        "standard_deviation": float(arr.std()),
    }


def _text_stats(present: list[Any]) -> dict:
    if not present:
        return {}
    ordered = sorted(present, key=str)
    mode_value, _ = Counter(str(v) for v in present).most_common(1)[0]
    return {"min": ordered[0], "max": ordered[-1], "mode": mode_value}


def _missing_issue(column: str, null_count: int, null_pct: float) -> Optional[QualityIssue]:
    if null_pct > 50:
        severity = "high"
    elif null_pct > 20:
        severity = "medium"
    else:
        return None
    return QualityIssue(
        type="missing",
        severity=severity,
        column=column,
        message=f"{null_pct:.1f}% of values are missing",
        count=null_count,
        percentage=null_pct,
    )


def _inconsistent_issue(column: str, present: list[Any]) -> Optional[QualityIssue]:
    """Values that differ only by case or surrounding whitespace."""
    variants: dict[str, set] = {}
    for value in present:
        if isinstance(value, str):
            variants.setdefault(value.strip().lower(), set()).add(value)
    conflicting = {k for k, forms in variants.items() if len(forms) > 1}
    if not conflicting:
        return None
    count = sum(1 for v in present if isinstance(v, str) and v.strip().lower() in conflicting)
    return QualityIssue(
        type="inconsistent",
        severity="low",
        column=column,
        message=f"{len(conflicting)} value(s) appear with inconsistent case or spacing",
        count=count,
        percentage=count / len(present) * 100,
    )


def profile_column(rows: list[dict[str, Any]], column: ColumnDefinition) -> ColumnProfile:
    """Compute statistics and quality issues for one column."""
    name = column.column_name
    data_type = DataType(column.data_type)
    values = [row.get(name) for row in rows]
    present = [v for v in values if not is_null(v)]

    null_count = len(values) - len(present)
    null_pct = null_count / len(values) * 100 if values else 0.0

    distinct: dict[Any, Any] = {}
    for value in present:
        distinct.setdefault(hashable(value), value)
    unique_count = len(distinct)
    unique_pct = unique_count / len(present) * 100 if present else 0.0
    duplicate_count = len(present) - unique_count

    numeric = data_type in NUMERIC_TYPES
    stats = _numeric_stats(present, data_type) if numeric else _text_stats(present)

    issues = []
    missing = _missing_issue(name, null_count, null_pct)
    if missing:
        issues.append(missing)

    if unique_pct < 50 and len(present) > 10:
        issues.append(QualityIssue(
            type="duplicate",
            severity="high" if unique_pct < 20 else "medium",
            column=name,
            message=f"Only {unique_pct:.1f}% of values are unique",
            count=duplicate_count,
            percentage=100 - unique_pct,
        ))

    if numeric:
        invalid = sum(1 for v in present if to_number(v) is None)
        if invalid:
            invalid_pct = invalid / len(present) * 100
            issues.append(QualityIssue(
                type="invalid",
                severity="high" if invalid_pct > 20 else "medium",
                column=name,
                message=f"{invalid} invalid numeric values found",
                count=invalid,
                percentage=invalid_pct,
            ))

        mean = stats.get("mean")
        std = stats.get("standard_deviation")
        if mean is not None and std:
            outliers = sum(
                1 for n in (to_number(v) for v in present)
                if n is not None and abs((n - mean) / std) > OUTLIER_Z_SCORE
            )
            if outliers and outliers / len(present) > OUTLIER_MIN_SHARE:
                issues.append(QualityIssue(
                    type="outlier",
                    severity="low",
                    column=name,
                    message=f"{outliers} potential outliers detected",
                    count=outliers,
                    percentage=outliers / len(present) * 100,
                ))
    elif data_type == DataType.STRING:
        inconsistent = _inconsistent_issue(name, present)
        if inconsistent:
            issues.append(inconsistent)

    score = 100.0 - null_pct * 0.5 - (100 - unique_pct) * 0.3
    score -= sum(SEVERITY_PENALTY[i.severity] for i in issues)
    score = max(0.0, min(100.0, score))

    return ColumnProfile(
        column_name=name,
        data_type=data_type.value,
        null_count=null_count,
        null_percentage=null_pct,
        unique_count=unique_count,
        unique_percentage=unique_pct,
        duplicate_count=duplicate_count,
        distinct_values=list(distinct.values())[:DISTINCT_VALUES_LIMIT],
        sample_values=present[:SAMPLE_VALUES_LIMIT],
        quality_score=score,
        issues=issues,
        **stats,
    )


def count_duplicate_rows(rows: list[dict[str, Any]]) -> int:
    """Rows whose full JSON form was already seen."""
    seen = set()
    duplicates = 0
    for row in rows:
        key = json.dumps(row, sort_keys=True, default=str)
        if key in seen:
            duplicates += 1
        else:
            seen.add(key)
    return duplicates


def _validity(profiles: list[ColumnProfile]) -> float:
    invalid = [i for p in profiles for i in p.issues if i.type == "invalid"]
    if not invalid:
        return 100.0
    return 100.0 - sum(i.percentage or 0 for i in invalid) / len(invalid)


def _consistency(profiles: list[ColumnProfile]) -> float:
    inconsistent = sum(1 for p in profiles for i in p.issues if i.type == "inconsistent")
    return max(0.0, 100.0 - inconsistent * 10)


def profile_data(rows: list[dict[str, Any]], columns: list[ColumnDefinition]) -> DataProfile:
    """
    Profile a row set.

    Overall quality is the mean of completeness, uniqueness, validity and
    consistency. Only high and medium severity issues are listed at the
    overall level; low severity ones stay on their column profile.

    Args:
        rows: Rows to profile
        columns: Column definitions giving each column's type

    Returns:
        DataProfile snapshot
    """
    if not rows:
        empty = QualityScore(overall=0.0, completeness=0.0, uniqueness=0.0, validity=0.0, consistency=0.0)
        return DataProfile(
            column_profiles=[],
            overall_quality=empty,
            row_count=0,
            duplicate_rows=0,
            completeness=0.0,
            uniqueness=0.0,
            validity=0.0,
            consistency=0.0,
        )

    profiles = [profile_column(rows, c) for c in columns]
    duplicate_rows = count_duplicate_rows(rows)

    if profiles:
        completeness = 100.0 - sum(p.null_percentage for p in profiles) / len(profiles)
        uniqueness = sum(p.unique_percentage for p in profiles) / len(profiles)
        validity = _validity(profiles)
        consistency = _consistency(profiles)
    else:
        completeness = uniqueness = validity = consistency = 0.0

    issues = [i for p in profiles for i in p.issues]
    if duplicate_rows:
        share = duplicate_rows / len(rows)
        issues.append(QualityIssue(
            type="duplicate",
            severity="high" if share > 0.1 else "medium",
            message=f"{duplicate_rows} duplicate rows found",
            count=duplicate_rows,
            percentage=share * 100,
        ))

    overall = QualityScore(
        overall=(completeness + uniqueness + validity + consistency) / 4,
        completeness=completeness,
        uniqueness=uniqueness,
        validity=validity,
        consistency=consistency,
        issues=[i for i in issues if i.severity in ("high", "medium")],
    )
    logger.debug(f"Profiled {len(rows)} rows x {len(columns)} columns, overall {overall.overall:.1f}")
    return DataProfile(
        column_profiles=profiles,
        overall_quality=overall,
        row_count=len(rows),
        duplicate_rows=duplicate_rows,
        completeness=completeness,
        uniqueness=uniqueness,
        validity=validity,
        consistency=consistency,
    )


def generate_quality_report(profile: DataProfile) -> QualityReport:
    """Human-readable summary and recommendations for a profile."""
    quality = profile.overall_quality
    critical = [i for i in quality.issues if i.severity == "high"]

    summary = "\n".join([
        f"Data Quality Score: {quality.overall:.1f}/100",
        "",
        f"Completeness: {profile.completeness:.1f}%",
        f"Uniqueness: {profile.uniqueness:.1f}%",
        f"Validity: {profile.validity:.1f}%",
        f"Consistency: {profile.consistency:.1f}%",
        "",
        f"Total Rows: {profile.row_count:,}",
        f"Duplicate Rows: {profile.duplicate_rows:,}",
        f"Issues Found: {len(quality.issues)}",
    ])

    recommendations = []
    if profile.completeness < 80:
        recommendations.append(
            "High percentage of missing values. Consider data collection "
            "improvements or imputation strategies."
        )
    if profile.duplicate_rows > profile.row_count * 0.1:
        recommendations.append(
            "Significant duplicate rows detected. Consider deduplication before analysis."
        )

    high_null = [p for p in profile.column_profiles if p.null_percentage > 50]
    if high_null:
        recommendations.append(
            f"{len(high_null)} column(s) have >50% missing values. Review data collection process."
        )

    low_unique = [
        p for p in profile.column_profiles
        if p.unique_percentage < 20 and p.null_count < p.unique_count
    ]
    if low_unique:
        recommendations.append(
            f"{len(low_unique)} column(s) have low uniqueness. "
            "Consider if these should be categorical fields."
        )

    if critical:
        recommendations.append(f"{len(critical)} critical issue(s) require immediate attention.")

    return QualityReport(summary=summary, recommendations=recommendations, critical_issues=critical)
