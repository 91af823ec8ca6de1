"""One-shot engine: collect every configured source and push once."""
from typing import List, Optional
import logging

from remotepush.client import PushResult, RemoteWriteClient
from remotepush.config import Config
from remotepush.series import ObservationBatch
from remotepush.sources import MetricSource, create_source

logger = logging.getLogger(__name__)


class PushEngine:
    """Collects observations from all sources and hands them to the client."""

    def __init__(
        self,
        config: Config,
        sources: Optional[List[MetricSource]] = None,
        client: Optional[RemoteWriteClient] = None
    ):
        self.config = config
        self.client = client or RemoteWriteClient(config.remote_write)

        if sources is None:
            sources = self._initialize_sources()
        self.sources = sources

        logger.info(f"Push engine initialized with {len(self.sources)} sources")

    def _initialize_sources(self) -> List[MetricSource]:
        """Create sources for every enabled config entry."""
        sources = []
        for source_config in self.config.sources:
            if not source_config.enabled:
                logger.info(f"Source '{source_config.name}' disabled")
                continue
            sources.append(create_source(source_config))
        return sources

    def collect(self) -> List[ObservationBatch]:
        """
        Collect one batch per source.

        A source that fails is logged and left out; the others still push.
        """
        batches: List[ObservationBatch] = []
        for source in self.sources:
            try:
                batch = source.collect()
            except Exception as e:
                logger.error(f"Error collecting source '{source.name}': {e}", exc_info=True)
                continue

            logger.info(f"Source '{source.name}': {len(batch)} observations")
            batches.append(batch)
        return batches

    def run(self, dry_run: bool = False) -> PushResult:
        """Collect and push once."""
        try:
            batches = self.collect()
            return self.client.push(batches, dry_run=dry_run)
        finally:
            self.client.close()
