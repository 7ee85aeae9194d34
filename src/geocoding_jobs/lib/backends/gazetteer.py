"""Named boundary reference data used by the internal backend."""

import json
from pathlib import Path

from loguru import logger
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry


def normalize_name(name: str) -> str:
    """Normalize a place name or query for lookup (case and whitespace insensitive)."""
    return " ".join(name.casefold().split())


class Gazetteer:
    """In-memory index of named geometries, one namespace per geocoding kind."""

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, BaseGeometry]] = {}

    def __len__(self) -> int:
        return sum(len(names) for names in self._entries.values())

    def add(self, kind: str, name: str, geometry: BaseGeometry, aliases: list[str] | None = None) -> None:
        """Register a geometry under a name and optional aliases."""
        names = self._entries.setdefault(kind, {})
        for key in [name, *(aliases or [])]:
            normalized = normalize_name(key)
            if normalized:
                names[normalized] = geometry

    def lookup(self, kind: str, query: str) -> BaseGeometry | None:
        """Find the geometry registered for ``query`` under ``kind``."""
        return self._entries.get(kind, {}).get(normalize_name(query))

    @classmethod
    def from_geojson(cls, path: str | Path) -> "Gazetteer":
        """Load a GeoJSON FeatureCollection.

        Each feature needs ``kind`` and ``name`` properties and may carry an
        ``aliases`` list. Features without them are skipped.

        Args:
            path: Path to the GeoJSON file.

        Returns:
            A populated Gazetteer.
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        gazetteer = cls()
        skipped = 0
        for feature in data.get("features", []):
            properties = feature.get("properties") or {}
            kind = properties.get("kind")
            name = properties.get("name")
            if not kind or not name or not feature.get("geometry"):
                skipped += 1
                continue
            gazetteer.add(kind, name, shape(feature["geometry"]), aliases=properties.get("aliases"))
        if skipped:
            logger.warning(f"Skipped {skipped} gazetteer features without kind, name, or geometry")
        logger.info(f"Loaded {len(gazetteer)} gazetteer entries from {path}")
        return gazetteer
