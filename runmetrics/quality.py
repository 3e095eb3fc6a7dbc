"""Confidence / data-quality envelope shared by every calculator.

Every calculator returns a MetricResult: the value, a confidence in [0, 1],
a DataQuality block and the tag of the formula or fallback path that
produced it. Composite results bound their confidence by the confidence of
their required inputs (see bounded_confidence).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, Iterable, TypeVar

from runmetrics.errors import QualityFlag

T = TypeVar("T")

# Points removed from the quality score per attached flag.
FLAG_PENALTY = 5


class CalculationMethod(str, Enum):
    BANISTER_TRIMP = "banister_trimp"
    PACE_ESTIMATED_TRIMP = "pace_estimated_trimp"
    EWMA_FITNESS = "ewma_ctl_atl"
    ROLLING_ACWR = "rolling_acwr"
    COMPOSITE_RISK = "composite_risk"
    VO2MAX_HEART_RATE = "vo2max_heart_rate"
    VO2MAX_PACE = "vo2max_pace_table"
    VO2MAX_ROLLING = "vo2max_rolling_ewma"
    ENVIRONMENTAL_ADJUSTMENT = "environmental_adjustment"
    PACE_HR_DECOUPLING = "pace_hr_decoupling"
    PACE_ONLY_DECOUPLING = "pace_only_decoupling"
    DECOUPLING_TREND = "decoupling_trend"
    ACTIVITY_SUMMARY = "activity_summary"
    INSUFFICIENT_DATA = "insufficient_data"
    NOT_APPLICABLE = "not_applicable"


@dataclass(frozen=True)
class DataQuality:
    quality_score: int                         # 0-100
    missing_data_impact: tuple[str, ...] = ()  # human-readable notes
    flags: tuple[QualityFlag, ...] = ()


@dataclass(frozen=True)
class MetricResult(Generic[T]):
    """Result envelope returned by every calculator."""
    value: T
    confidence: float
    data_quality: DataQuality
    calculation_method: CalculationMethod
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def flags(self) -> tuple[QualityFlag, ...]:
        return self.data_quality.flags

    def has_flag(self, flag: QualityFlag) -> bool:
        return flag in self.data_quality.flags

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable representation (camelCase envelope keys)."""
        out: dict[str, Any] = {
            "value": to_jsonable(self.value),
            "confidence": self.confidence,
            "dataQuality": {
                "qualityScore": self.data_quality.quality_score,
                "missingDataImpact": list(self.data_quality.missing_data_impact),
                "flags": [f.value for f in self.data_quality.flags],
            },
            "calculationMethod": self.calculation_method.value,
        }
        if self.warnings:
            out["warnings"] = list(self.warnings)
        return out


def to_jsonable(obj: Any) -> Any:
    """Convert dataclasses, enums, dates and tuples into plain JSON types."""
    if isinstance(obj, MetricResult):
        return obj.to_dict()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, dict):
        return {(k.value if isinstance(k, Enum) else str(k)): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def bounded_confidence(own: float, *inputs: float | None) -> float:
    """Bound a composite confidence by its required inputs.

    None marks an unavailable optional input and is ignored.
    """
    available = [c for c in inputs if c is not None]
    return min([own, *available]) if available else own


def quality_score_for(confidence: float, flags: Iterable[QualityFlag] = ()) -> int:
    score = confidence * 100 - FLAG_PENALTY * len(tuple(flags))
    return int(round(clamp(score, 0, 100)))


def _unique(items: Iterable) -> tuple:
    seen: list = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return tuple(seen)


def make_result(
    value: T,
    confidence: float,
    method: CalculationMethod,
    flags: Iterable[QualityFlag] = (),
    missing: Iterable[str] = (),
    warnings: Iterable[str] = (),
) -> MetricResult[T]:
    """Assemble a MetricResult, clamping confidence and scoring quality."""
    confidence = round(clamp(confidence, 0.0, 1.0), 3)
    flag_tuple = _unique(flags)
    return MetricResult(
        value=value,
        confidence=confidence,
        data_quality=DataQuality(
            quality_score=quality_score_for(confidence, flag_tuple),
            missing_data_impact=_unique(missing),
            flags=flag_tuple,
        ),
        calculation_method=method,
        warnings=_unique(warnings),
    )


def insufficient_result(
    value: T,
    reason: str,
    flag: QualityFlag = QualityFlag.INSUFFICIENT_DATA,
    method: CalculationMethod = CalculationMethod.INSUFFICIENT_DATA,
    confidence: float = 0.0,
    warnings: Iterable[str] = (),
) -> MetricResult[T]:
    """Soft failure: a default value carrying zero (or low) confidence."""
    return make_result(value, confidence, method, flags=(flag,), missing=(reason,), warnings=warnings)


def degrade(
    result: MetricResult[T],
    cap: float | None = None,
    flags: Iterable[QualityFlag] = (),
    missing: Iterable[str] = (),
    warnings: Iterable[str] = (),
) -> MetricResult[T]:
    """Copy of `result` with its confidence capped and extra quality notes."""
    confidence = result.confidence if cap is None else min(result.confidence, cap)
    return make_result(
        result.value,
        confidence,
        result.calculation_method,
        flags=[*result.flags, *flags],
        missing=[*result.data_quality.missing_data_impact, *missing],
        warnings=[*result.warnings, *warnings],
    )
