from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class Spacing:
    node_sep: float
    rank_sep: float


@dataclass(frozen=True)
class LayoutConfig:
    # Leaf boxes.
    leaf_width: float = 200
    leaf_height: float = 60
    # Group boxes: side margin on left/right/bottom, top band reserved for the label.
    side_margin: float = 40
    top_margin: float = 60
    min_group_width: float = 300
    min_group_height: float = 200
    # Spacing between children inside a group.
    node_sep: float = 80
    rank_sep: float = 100
    # Spacing between root boxes, and the offset of the whole diagram.
    root_node_sep: float = 120
    root_rank_sep: float = 180
    root_margin: float = 50

    @property
    def child_spacing(self) -> Spacing:
        return Spacing(node_sep=self.node_sep, rank_sep=self.rank_sep)

    @property
    def root_spacing(self) -> Spacing:
        return Spacing(node_sep=self.root_node_sep, rank_sep=self.root_rank_sep)

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


DEFAULT_LAYOUT_CONFIG = LayoutConfig()

# root_margin may be zero; every other value must be positive.
_ZERO_ALLOWED: set[str] = {"root_margin"}


class LayoutConfigError(ValueError):
    pass


def load_layout_file(path: str | Path) -> dict[str, float]:
    """Load layout overrides from a YAML file.

    Format:
      <field>: <number>

    Returns a mapping of field name -> value; only known LayoutConfig fields are allowed.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise LayoutConfigError("layout file must be a mapping of field -> number")

    known = {f.name for f in fields(LayoutConfig)}
    out: dict[str, float] = {}
    for k, v in raw.items():
        if not isinstance(k, str) or k not in known:
            raise LayoutConfigError(f"unknown layout field: {k} (choose from: {', '.join(sorted(known))})")
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise LayoutConfigError(f"layout field '{k}' must be a number")
        if v < 0 or (v == 0 and k not in _ZERO_ALLOWED):
            raise LayoutConfigError(f"layout field '{k}' must be positive")
        out[k] = float(v)
    return out


def merged_config(overrides: dict[str, Any] | None = None) -> LayoutConfig:
    """Return DEFAULT_LAYOUT_CONFIG with optional overrides applied."""
    if not overrides:
        return DEFAULT_LAYOUT_CONFIG
    return replace(DEFAULT_LAYOUT_CONFIG, **overrides)


def load_and_merge(config_file: str | None) -> LayoutConfig:
    if not config_file:
        return merged_config()
    overrides = load_layout_file(config_file)
    return merged_config(overrides)
