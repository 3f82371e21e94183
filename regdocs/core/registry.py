"""Source registry for managing listing page configurations."""

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import ValidationError

from ..models.source import ListingSource
from .config import Settings, get_settings
from .logging import get_logger

logger = get_logger(__name__)


class SourceRegistry:
    """Registry of listing sources loaded from a YAML file."""

    def __init__(self, sources_file: Optional[Path] = None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.sources_file = Path(sources_file or self.settings.sources_file)
        self._sources: Dict[str, ListingSource] = {}
        self._load_sources()

    def _load_sources(self) -> None:
        """Load sources from the YAML file, falling back to the configured base URL."""
        if not self.sources_file.exists():
            logger.warning(
                "Sources file not found, using default source",
                sources_file=str(self.sources_file),
                base_url=self.settings.source_base_url,
            )
            default = ListingSource(name="default", listing_url=self.settings.source_base_url)
            self._sources[default.name] = default
            return

        with open(self.sources_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        for position, source_data in enumerate(data.get("sources", [])):
            try:
                source = ListingSource(**source_data)
            except (TypeError, ValidationError) as e:
                logger.error(
                    "Invalid source configuration",
                    sources_file=str(self.sources_file),
                    position=position,
                    error=str(e),
                )
                continue

            if source.name in self._sources:
                logger.warning("Duplicate source name, keeping first", source_name=source.name)
                continue
            self._sources[source.name] = source

        logger.info(
            "Loaded listing sources",
            sources_file=str(self.sources_file),
            total=len(self._sources),
            active=len(self.list_sources(active_only=True)),
        )

    def get_source(self, name: str) -> Optional[ListingSource]:
        return self._sources.get(name)

    def list_sources(self, active_only: bool = False) -> List[ListingSource]:
        """List sources in file order."""
        sources = list(self._sources.values())
        if active_only:
            sources = [source for source in sources if source.is_active]
        return sources
