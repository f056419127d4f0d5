import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Type

logger = logging.getLogger(__name__)


class BioregionError(Exception):
    """Base class for errors raised by bioregion_network."""


class ParseError(BioregionError, ValueError):
    """A hierarchy record could not be parsed."""


class BipartiteViolationError(BioregionError):
    """A label appears both as a site and as a species."""


class ConfigurationError(BioregionError, ValueError):
    """Invalid option, raised before any computation starts."""


class UnclassifiedNodeWarning(UserWarning):
    """A node is missing from either the hierarchy or the occurrence relation."""


class UndefinedMetricWarning(RuntimeWarning):
    """A metric could not be computed (e.g. division by zero) and was left as NaN."""


@dataclass(frozen=True)
class QualityIssue:
    category: Type[Warning]
    entity: str
    message: str


@dataclass
class QualityReport:
    """
    Collects per-entity data-quality issues during a batch computation.

    Issues are never raised one by one: the batch keeps running, and emit()
    surfaces one aggregated warning per category at the end.
    """
    issues: List[QualityIssue] = field(default_factory=list)

    def record(self, category: Type[Warning], entity, message: str) -> None:
        self.issues.append(QualityIssue(category, str(entity), message))

    def merge(self, other: 'QualityReport') -> None:
        self.issues.extend(other.issues)

    def entities(self, category: Optional[Type[Warning]] = None) -> List[str]:
        seen: Dict[str, None] = {}
        for issue in self.issues:
            if category is None or issue.category is category:
                seen.setdefault(issue.entity, None)
        return list(seen)

    def count(self, category: Optional[Type[Warning]] = None) -> int:
        return len(self.entities(category))

    def __len__(self) -> int:
        return len(self.issues)

    def by_category(self) -> Dict[Type[Warning], List[QualityIssue]]:
        grouped: Dict[Type[Warning], List[QualityIssue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.category, []).append(issue)
        return grouped

    def summary_lines(self, max_entities: int = 10) -> List[str]:
        lines = []
        for category, issues in self.by_category().items():
            names = self.entities(category)
            sample = ', '.join(names[:max_entities])
            if len(names) > max_entities:
                sample += ', ...'
            lines.append(f"{category.__name__}: {len(names)} entities ({sample})")
            # each distinct message once
            for message in dict.fromkeys(i.message for i in issues):
                lines.append(f"  - {message}")
        return lines

    def emit(self, stacklevel: int = 2) -> None:
        for category in self.by_category():
            names = self.entities(category)
            sample = ', '.join(names[:5]) + (', ...' if len(names) > 5 else '')
            text = f"{len(names)} entities affected: {sample}"
            logger.warning("%s: %s", category.__name__, text)
            warnings.warn(text, category, stacklevel=stacklevel + 1)
