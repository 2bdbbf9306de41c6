# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Schema detection and data quality profiling."""

from .profiler import (
    ColumnProfile,
    DataProfile,
    QualityIssue,
    QualityReport,
    QualityScore,
    generate_quality_report,
    profile_data,
)
from .schema_detector import (
    DataQualityMetrics,
    DetectedSchema,
    SchemaRelationship,
    calculate_data_quality,
    detect_primary_keys,
    detect_relationships,
    detect_schema,
    suggest_column_descriptions,
)

__all__ = [
    "ColumnProfile",
    "DataProfile",
    "DataQualityMetrics",
    "DetectedSchema",
    "QualityIssue",
    "QualityReport",
    "QualityScore",
    "SchemaRelationship",
    "calculate_data_quality",
    "detect_primary_keys",
    "detect_relationships",
    "detect_schema",
    "generate_quality_report",
    "profile_data",
    "suggest_column_descriptions",
]
