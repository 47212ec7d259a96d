"""
Curated shoe catalogue - The closed vocabulary of known shoe names.

Free-text extraction only recognises shoes in this list, which keeps casual
brand mentions from being read as a specific model. The catalogue ships with
a built-in list and can be replaced by a CSV with at least a ``name`` column
(optional ``brand``, ``archetype`` and ``shoe_id`` columns).
"""

import logging
from dataclasses import dataclass
from io import StringIO
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from cinda.utils import settings
from cinda.utils.text import normalise


logger = logging.getLogger(__name__)


DEFAULT_CURATED_SHOES: List[str] = [
    "Adidas Evo SL",
    "Nike Pegasus Premium",
    "Hoka Bondi 9",
    "Mizuno Neo Zen",
    "Salomon Aero Glide 2",
    "Skechers Aero Burst",
    "Nike Vomero Plus",
    "New Balance FuelCell Rebel v5",
    "Puma MagMax Nitro",
]

# Tokens shorter than this are too generic to identify a model
MIN_TOKEN_LENGTH = 4
MIN_TOKEN_HITS = 2

MULTI_WORD_BRANDS = ["New Balance", "On Running"]


@dataclass(frozen=True)
class CatalogShoe:
    """One curated shoe."""

    name: str
    brand: str
    archetype: Optional[str] = None
    shoe_id: Optional[str] = None

    @property
    def normalised(self) -> str:
        return normalise(self.name)

    @property
    def tokens(self) -> List[str]:
        return [t for t in self.normalised.split(" ") if len(t) >= MIN_TOKEN_LENGTH]


@dataclass(frozen=True)
class CatalogMatch:
    """A curated shoe found in free text."""

    shoe: CatalogShoe
    confidence: str  # "high" for the full name, "medium" for token hits


def brand_from_name(name: str) -> str:
    """
    Derive the brand from a display name.

    Examples:
        >>> brand_from_name("New Balance FuelCell Rebel v5")
        'New Balance'
        >>> brand_from_name("Hoka Bondi 9")
        'Hoka'
    """
    lowered = normalise(name)
    for brand in MULTI_WORD_BRANDS:
        if lowered.startswith(normalise(brand)):
            return brand
    parts = name.split()
    return parts[0] if parts else ""


class ShoeCatalog:
    """
    Closed vocabulary of curated shoes.

    Example usage:
        catalog = ShoeCatalog.from_names(["Hoka Bondi 9"])
        match = catalog.match("the bondi 9 from hoka felt dead")
        # match.confidence == "high"
    """

    REQUIRED_COLUMNS = {"name"}

    def __init__(self, shoes: Optional[List[CatalogShoe]] = None) -> None:
        self.shoes: List[CatalogShoe] = list(shoes or [])
        self.warnings: List[str] = []

    @classmethod
    def from_names(cls, names: List[str]) -> "ShoeCatalog":
        shoes = [CatalogShoe(name=n, brand=brand_from_name(n)) for n in names if n and n.strip()]
        return cls(shoes)

    @classmethod
    def from_csv(cls, source: Union[str, Path, StringIO]) -> "ShoeCatalog":
        """
        Load the catalogue from CSV.

        Rows with a blank name or a duplicate of an earlier name are skipped
        with a warning.

        Raises:
            FileNotFoundError: If the path does not exist
            ValueError: If the ``name`` column is missing
        """
        catalog = cls()
        df = catalog._read_csv(source)

        missing = cls.REQUIRED_COLUMNS - set(df.columns)
        if missing:
            raise ValueError(f"Missing required catalogue columns: {sorted(missing)}")

        seen = set()
        for idx, row in df.iterrows():
            name = row.get("name")
            if pd.isna(name) or not str(name).strip():
                catalog._warn(f"Row {idx}: Skipping shoe without a name")
                continue
            name = str(name).strip()
            if normalise(name) in seen:
                catalog._warn(f"Row {idx}: Skipping duplicate shoe '{name}'")
                continue
            seen.add(normalise(name))

            brand = row.get("brand")
            archetype = row.get("archetype")
            shoe_id = row.get("shoe_id")
            catalog.shoes.append(CatalogShoe(
                name=name,
                brand=str(brand).strip() if not pd.isna(brand) and str(brand).strip() else brand_from_name(name),
                archetype=None if pd.isna(archetype) else str(archetype).strip(),
                shoe_id=None if pd.isna(shoe_id) else str(shoe_id).strip(),
            ))

        logger.info("Loaded %d curated shoes", len(catalog.shoes))
        return catalog

    @staticmethod
    def _read_csv(source: Union[str, Path, StringIO]) -> pd.DataFrame:
        if isinstance(source, StringIO):
            source.seek(0)
            return pd.read_csv(source)

        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Catalogue file not found: {path}")
        return pd.read_csv(path, encoding='utf-8-sig')

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning(message)

    @property
    def names(self) -> List[str]:
        return [shoe.name for shoe in self.shoes]

    def __len__(self) -> int:
        return len(self.shoes)

    def __contains__(self, name: str) -> bool:
        key = normalise(name)
        return any(shoe.normalised == key for shoe in self.shoes)

    def match(self, text: str) -> Optional[CatalogMatch]:
        """
        Find a curated shoe mentioned in text.

        A full normalised name is a high-confidence match. Failing that, a
        shoe with at least two distinctive tokens (4+ characters) present in
        the text is a medium-confidence match. Catalogue order breaks ties.

        Args:
            text: Raw or normalised text

        Returns:
            CatalogMatch or None
        """
        text_norm = normalise(text)
        if not text_norm:
            return None
        padded = f" {text_norm} "
        words = set(text_norm.split(" "))

        for shoe in self.shoes:
            if f" {shoe.normalised} " in padded:
                return CatalogMatch(shoe=shoe, confidence="high")

        for shoe in self.shoes:
            hits = sum(1 for token in shoe.tokens if token in words)
            if hits >= MIN_TOKEN_HITS:
                return CatalogMatch(shoe=shoe, confidence="medium")
        return None


# Module-level default catalogue
_default_catalog = None


def get_default_catalog() -> ShoeCatalog:
    """
    Catalogue from CINDA_CATALOG_PATH, or the built-in list.

    A configured CSV that cannot be read falls back to the built-in list.
    """
    global _default_catalog
    if _default_catalog is None:
        if settings.CATALOG_PATH:
            try:
                _default_catalog = ShoeCatalog.from_csv(settings.CATALOG_PATH)
            except (OSError, ValueError, pd.errors.ParserError) as e:
                logger.error("Could not load catalogue %s: %s", settings.CATALOG_PATH, e)
        if _default_catalog is None:
            _default_catalog = ShoeCatalog.from_names(DEFAULT_CURATED_SHOES)
    return _default_catalog
