from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional

from .coloring import DEFAULT_OTHER_COLOR, check_color_options, check_order_mode
from .errors import ConfigurationError
from .hierarchy import LEVEL_PREFIX
from .relation import Field


@dataclass
class AnalysisConfig:
    """Options shared by the bioregion scripts; see validate() for the accepted values."""
    site_field: Field = 0
    species_field: Field = 1
    abundance_field: Optional[Field] = None
    level: str = 'lvl1'
    max_colors: int = 12
    palette: str = 'Paired'
    overflow: Optional[str] = 'single'
    other_color: str = DEFAULT_OTHER_COLOR
    order_by: str = 'frequency'
    directed: bool = False
    hex2rgb: bool = True
    site_area_file: Optional[str] = None
    replace_leaf_names: bool = True
    progress: bool = True

    @classmethod
    def from_dict(cls, cfg: Mapping[str, Any]) -> 'AnalysisConfig':
        """Build and validate from a plain dict; unknown keys are an error."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(cfg) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**dict(cfg)).validate()

    def validate(self) -> 'AnalysisConfig':
        for name in ('site_field', 'species_field'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (str, int)):
                raise ConfigurationError(f"{name} must be a column name or position, got {value!r}")
        if self.site_field == self.species_field:
            raise ConfigurationError("site_field and species_field must differ")
        if not (isinstance(self.level, str) and self.level.startswith(LEVEL_PREFIX)
                and self.level[len(LEVEL_PREFIX):].isdigit() and int(self.level[len(LEVEL_PREFIX):]) >= 1):
            raise ConfigurationError(f"level must look like 'lvl1', got {self.level!r}")
        check_order_mode(self.order_by)
        check_color_options(self.max_colors, self.palette, self.overflow, self.other_color)
        for name in ('directed', 'hex2rgb', 'replace_leaf_names', 'progress'):
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationError(f"{name} must be True or False")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
