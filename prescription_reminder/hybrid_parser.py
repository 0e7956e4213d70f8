"""
Hybrid parser: local extraction first, remote AI extraction when needed
Local is fast and free; the remote call is bounded, never retried and
never allowed to fail the document
"""

import time
import logging
from typing import Union

from .config import HYBRID_SETTINGS
from .exceptions import RemoteExtractionFailure
from .local_parser import LocalExtractionEngine
from .models import (
    METHOD_LOCAL, METHOD_LOCAL_FALLBACK, METHOD_LOCAL_ONLY, METHOD_REMOTE, METHOD_REMOTE_ONLY,
    ExtractionResult, PdfContent
)
from .smart_filter import SmartFilter

logger = logging.getLogger(__name__)

# Orchestration states
LOCAL_ATTEMPT = 'LOCAL_ATTEMPT'
ACCEPT_LOCAL = 'ACCEPT_LOCAL'
REMOTE_ATTEMPT = 'REMOTE_ATTEMPT'
ACCEPT_REMOTE = 'ACCEPT_REMOTE'
FALLBACK_LOCAL = 'FALLBACK_LOCAL'
LOCAL_ONLY = 'LOCAL_ONLY'
REMOTE_ONLY = 'REMOTE_ONLY'


class HybridParser:
    """
    Chooses between the local heuristic parse and a remote AI parse

    Args:
        local_engine: LocalExtractionEngine
        remote_extractor: any object with extract(text) -> ExtractionResult
        smart_filter: SmartFilter used to shrink the remote payload
        config: overrides for HYBRID_SETTINGS
    """

    def __init__(self, local_engine=None, remote_extractor=None, smart_filter=None, config=None):
        self.local_engine = local_engine or LocalExtractionEngine()
        self.remote_extractor = remote_extractor
        self.smart_filter = smart_filter or SmartFilter()
        self.config = dict(HYBRID_SETTINGS)
        self.config.update(config or {})

    def configure(self, **options):
        """Update orchestration settings in place"""
        self.config.update(options)

    def is_local_result_good(self, result: ExtractionResult, config=None) -> bool:
        """Enough medications OR enough appointments"""
        config = config or self.config
        return (
            len(result.medications) >= config['min_medications_local']
            or len(result.appointments) >= config['min_appointments_local']
        )

    def parse(self, source: Union[str, PdfContent], **overrides) -> ExtractionResult:
        """
        Parse recognised text or PDF text-layer content

        Keyword overrides (min_medications_local, min_appointments_local,
        enable_remote, filter_before_remote) apply to this call only
        """
        config = dict(self.config)
        config.update(overrides)
        start = time.perf_counter()

        logger.debug(f"Hybrid parser entering {LOCAL_ATTEMPT}")
        local_result = self.local_engine.extract(source)
        logger.info(
            f"⚡ Local parser: {len(local_result.medications)} medications, "
            f"{len(local_result.appointments)} appointments"
        )

        if not config['enable_remote'] or self.remote_extractor is None:
            return self._finish(local_result, LOCAL_ONLY, METHOD_LOCAL_ONLY, start)

        if self.is_local_result_good(local_result, config):
            logger.info("✅ Accepting local result, no API call needed")
            return self._finish(local_result, ACCEPT_LOCAL, METHOD_LOCAL, start)

        logger.info(
            f"⚠️  Local result not good enough (need >= {config['min_medications_local']} medications "
            f"or >= {config['min_appointments_local']} appointments)"
        )
        return self._remote_attempt(source, local_result, config, start)

    def parse_local_only(self, source: Union[str, PdfContent]) -> ExtractionResult:
        """Force the local path regardless of configuration"""
        return self.parse(source, enable_remote=False)

    def parse_remote_only(self, source: Union[str, PdfContent]) -> ExtractionResult:
        """
        Force the remote path: normalised (and filtered) text straight to the
        remote extractor, no local parse and no fallback

        Raises:
            RemoteExtractionFailure: no remote extractor, or the remote call failed
        """
        if self.remote_extractor is None:
            raise RemoteExtractionFailure("No remote extractor configured")

        start = time.perf_counter()
        logger.info("🤖 Forcing remote extraction...")
        text = self.local_engine.normalize(source)
        if self.config['filter_before_remote']:
            text = self.smart_filter.process(text).text
        result = self.remote_extractor.extract(text)
        return self._finish(result, REMOTE_ONLY, METHOD_REMOTE_ONLY, start)

    def _remote_attempt(self, source, local_result, config, start) -> ExtractionResult:
        logger.debug(f"Hybrid parser entering {REMOTE_ATTEMPT}")

        # Any collaborator failure, including RemoteExtractionFailure, falls back to local
        try:
            text = self.local_engine.normalize(source)
            if config['filter_before_remote']:
                text = self.smart_filter.process(text).text
            remote_result = self.remote_extractor.extract(text)
        except Exception as e:
            logger.warning(f"⚠️  Remote extraction failed, falling back to local result: {e}")
            local_result.remote_error = str(e)
            return self._finish(local_result, FALLBACK_LOCAL, METHOD_LOCAL_FALLBACK, start)

        remote_result.local_result = local_result
        logger.info(
            f"✅ Accepting remote result: {len(remote_result.medications)} medications, "
            f"{len(remote_result.appointments)} appointments"
        )
        return self._finish(remote_result, ACCEPT_REMOTE, METHOD_REMOTE, start)

    def _finish(self, result, state, method, start) -> ExtractionResult:
        result.state = state
        result.method = method
        result.elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(f"Hybrid parser finished in state {state} ({result.elapsed_ms}ms)")
        return result
