"""
models.py

Immutable result records passed between the analyzers, the aggregator and
the scoring pipeline. Every record can be turned into a JSON-friendly dict
with ``to_dict()`` (the shape returned by the HTTP API).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class AnalysisSignal:
    """Score contribution of one analyzer plus the reasons behind it."""
    score: int = 0
    indicators: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.score < 0:
            raise ValueError("signal score must be >= 0")
        # accept any sequence, store a tuple
        object.__setattr__(self, "indicators", tuple(self.indicators))

    @classmethod
    def empty(cls) -> "AnalysisSignal":
        return cls(0, ())

    @classmethod
    def failed(cls, indicator: str) -> "AnalysisSignal":
        return cls(0, (indicator,))


@dataclass(frozen=True)
class DomainFacts:
    """
    Facts gathered about a hostname.

    ``has_tls`` and ``age_days`` are None when unknown. ``resolvable`` is None
    only when the domain analysis itself could not run.
    """
    resolvable: Optional[bool] = None
    has_tls: Optional[bool] = None
    age_days: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolvable": self.resolvable,
            "has_tls": self.has_tls,
            "age_days": self.age_days,
        }


@dataclass(frozen=True)
class ThreatFeedResult:
    """Verdict reported by an external reputation service."""
    is_safe: bool
    threat_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThreatFeedResult":
        # accepts both {"is_safe": ...} and the feed's {"isSafe": ...}
        if "is_safe" in data:
            is_safe = data["is_safe"]
        elif "isSafe" in data:
            is_safe = data["isSafe"]
        else:
            raise ValueError("threat result needs an 'is_safe' field")
        if not isinstance(is_safe, bool):
            raise ValueError("'is_safe' must be a boolean")
        threat_type = data.get("threat_type", data.get("threatType"))
        return cls(is_safe=is_safe, threat_type=threat_type)


@dataclass(frozen=True)
class Verdict:
    url: str
    total_score: int
    is_phishing: bool
    indicators: Tuple[str, ...] = ()
    domain_facts: DomainFacts = field(default_factory=DomainFacts)
    redirect_count: int = 0
    threat_feed_flag: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "total_score": self.total_score,
            "is_phishing": self.is_phishing,
            "indicators": list(self.indicators),
            "domain_facts": self.domain_facts.to_dict(),
            "redirect_count": self.redirect_count,
            "threat_feed_flag": self.threat_feed_flag,
        }
