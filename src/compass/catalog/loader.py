"""Control catalog loading.

The catalog is read once at startup and shared read-only afterwards. A
workspace may ship its own `controls.yaml` to replace the bundled one.
"""

from __future__ import annotations

from importlib import resources
from pathlib import Path
from typing import Optional

import pydantic
import yaml

from ..core.errors import CatalogError
from ..models.control import Control, ControlSource, RiskLevel

BUNDLED_CATALOG = "controls.yaml"


class ControlCatalog:
    """Immutable, id-indexed view of all controls, ordered by domain then id."""

    def __init__(self, controls: list[Control], catalog_id: str = "", version: str = ""):
        self.catalog_id = catalog_id
        self.version = version
        ordered = sorted(controls, key=lambda c: (c.domain_number, c.id))
        self._by_id: dict[str, Control] = {}
        for control in ordered:
            if control.id in self._by_id:
                raise CatalogError(f"Duplicate control id: {control.id}")
            self._by_id[control.id] = control

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, control_id: object) -> bool:
        return control_id in self._by_id

    def __iter__(self):
        return iter(self._by_id.values())

    def get(self, control_id: str) -> Optional[Control]:
        return self._by_id.get(control_id)

    def filter(
        self,
        source: Optional[ControlSource] = None,
        domain_number: Optional[int] = None,
        risk_level: Optional[RiskLevel] = None,
    ) -> list[Control]:
        return [
            c for c in self._by_id.values()
            if (source is None or c.source == source)
            and (domain_number is None or c.domain_number == domain_number)
            and (risk_level is None or c.risk_level == risk_level)
        ]


def parse_catalog(data: dict) -> ControlCatalog:
    """Build a catalog from the parsed YAML document.

    Domains carry the number and name; each control inherits them.
    """
    if not isinstance(data, dict):
        raise CatalogError("Catalog document must be a mapping")

    controls: list[Control] = []
    for domain in data.get("domains", []) or []:
        for ctrl in domain.get("controls", []) or []:
            fields = dict(ctrl)
            fields.setdefault("domain_number", domain.get("number"))
            fields.setdefault("domain_name", domain.get("name", ""))
            try:
                controls.append(Control.model_validate(fields))
            except pydantic.ValidationError as e:
                raise CatalogError(f"Invalid control {ctrl.get('id', '?')}: {e}") from e

    return ControlCatalog(
        controls,
        catalog_id=str(data.get("id", "")),
        version=str(data.get("version", "")),
    )


def load_catalog(path: Optional[Path] = None) -> ControlCatalog:
    """Load a catalog from `path`, or the bundled catalog when omitted."""
    if path is not None:
        content = path.read_text(encoding="utf-8-sig")
    else:
        content = resources.files("compass.catalog").joinpath(BUNDLED_CATALOG).read_text(encoding="utf-8")

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise CatalogError(f"Catalog is not valid YAML: {e}") from e
    return parse_catalog(data or {})


def load_workspace_catalog(workspace: Path) -> ControlCatalog:
    """Prefer .compass/controls.yaml when present."""
    override = workspace / ".compass" / BUNDLED_CATALOG
    if override.exists():
        return load_catalog(override)
    return load_catalog()
