"""Source connector facade.

Validates configuration, owns one search service per registered platform,
and dispatches each `search` call by ``options.type``. Callers persist the
returned `LastProcessedState` and hand it back on the next call; progress
through submit, poll and fetch is driven entirely by those repeated calls.

Example
-------
    connector = SourceConnector()
    await connector.initialize({"api_key": "..."})
    results = await connector.search(None, {"type": "twitter-scraper", "query": "python"})
    state = results.next_last_processed_state
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import httpx
import pydantic

from ferret.client import SearchBackendClient
from ferret.config import ConnectorConfig, Settings, load_settings
from ferret.exceptions import (
    ConfigError,
    FieldError,
    NotInitializedError,
    PlatformNotRegisteredError,
    ValidationError,
)
from ferret.logging_conf import configure_logging
from ferret.models import LastProcessedState, PlatformState, SearchOptions, SearchResults
from ferret.platforms.base import PlatformOptions, PlatformSearchService
from ferret.registry import REGISTRY, RegistryEntry

logger = logging.getLogger(__name__)

StateInput = Union[LastProcessedState, Mapping[str, Any], None]
OptionsInput = Union[SearchOptions, Mapping[str, Any]]


def _field_errors(exc: pydantic.ValidationError, prefix: str = "") -> List[FieldError]:
    errors = []
    for err in exc.errors():
        path = ".".join(str(p) for p in err.get("loc", ()))
        if prefix:
            path = f"{prefix}.{path}" if path else prefix
        errors.append(FieldError(path=path, message=err.get("msg", "invalid value")))
    return errors


class SourceConnector:
    """Resumable multi-platform source backed by the asynchronous search backend."""

    name = "ferret"

    def __init__(
        self,
        *,
        registry: Optional[Mapping[str, RegistryEntry]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._registry = REGISTRY if registry is None else registry
        self._transport = transport
        self._client: Optional[SearchBackendClient] = None
        self._services: Dict[str, PlatformSearchService] = {}

    @property
    def platforms(self) -> List[str]:
        return sorted(self._registry)

    @classmethod
    async def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SourceConnector":
        """Configure logging from ``settings.app`` and return an initialized connector.

        Settings are loaded from the environment when not given.
        """
        settings = settings if settings is not None else load_settings()
        configure_logging(settings.app)
        connector = cls(transport=transport)
        await connector.initialize(settings.connector_config())
        return connector

    async def initialize(self, config: Union[ConnectorConfig, Mapping[str, Any], None]) -> None:
        """Validate configuration and create one service per registered platform."""
        if config is None:
            raise ConfigError("Connector configuration is required.")
        try:
            cfg = ConnectorConfig.model_validate(config)
        except pydantic.ValidationError as exc:
            details = ", ".join(str(e) for e in _field_errors(exc))
            raise ConfigError(f"Invalid connector configuration: {details}") from exc

        self._client = SearchBackendClient(
            api_key=cfg.api_key,
            base_url=str(cfg.base_url),
            timeout=cfg.timeout,
            transport=self._transport,
        )
        self._services = {
            platform_type: entry.factory(self._client)
            for platform_type, entry in self._registry.items()
        }
        logger.info("Connector initialized with platforms: %s", ", ".join(self.platforms))

    async def search(self, last_processed_state: StateInput, options: OptionsInput) -> SearchResults:
        """Run one step of the platform's job state machine.

        Raises `PlatformNotRegisteredError` for an unknown ``options.type`` and
        `ValidationError` for options (or persisted state) that fail the
        platform's schema; neither case reaches the backend. Backend failures
        are reported through the job status in the returned state.
        """
        if self._client is None:
            raise NotInitializedError("Connector not initialized. Call initialize first.")

        search_options = self._parse_options(options)
        platform_type = search_options.type
        entry = self._registry.get(platform_type)
        service = self._services.get(platform_type)
        if entry is None or service is None:
            raise PlatformNotRegisteredError(platform_type, self._registry)

        platform_options = self._validate_options(entry, search_options)
        state = self._platform_state(platform_type, last_processed_state)
        logger.debug("Dispatching %s search, state: %s", platform_type, state)

        outcome = await service.search(platform_options, state)

        next_state = None
        if outcome.next_state is not None:
            next_state = LastProcessedState(data=outcome.next_state)
        logger.info("%s search returned %d items", platform_type, len(outcome.items))
        return SearchResults(items=outcome.items, next_last_processed_state=next_state)

    def _parse_options(self, options: OptionsInput) -> SearchOptions:
        if isinstance(options, SearchOptions):
            return options
        try:
            return SearchOptions.model_validate(options)
        except pydantic.ValidationError as exc:
            platform_type = options.get("type") if isinstance(options, Mapping) else None
            raise ValidationError(str(platform_type or "unknown"), _field_errors(exc)) from exc

    def _validate_options(self, entry: RegistryEntry, options: SearchOptions) -> PlatformOptions:
        raw_args = entry.prepare_args(options)
        try:
            return entry.options_model.model_validate(raw_args)
        except pydantic.ValidationError as exc:
            errors = _field_errors(exc)
            logger.warning(
                "Options validation failed for %s: %s",
                entry.platform_type,
                ", ".join(str(e) for e in errors),
            )
            raise ValidationError(entry.platform_type, errors) from exc

    def _platform_state(self, platform_type: str, last: StateInput) -> Optional[PlatformState]:
        if last is None:
            return None
        if isinstance(last, LastProcessedState):
            return last.data
        data = last.get("data")
        if data is None:
            return None
        try:
            return PlatformState.model_validate(data)
        except pydantic.ValidationError as exc:
            raise ValidationError(platform_type, _field_errors(exc, prefix="data")) from exc

    async def shutdown(self) -> List[Tuple[str, Exception]]:
        """Shut down every owned service.

        Never raises; per-service failures are logged and returned.
        """
        failures: List[Tuple[str, Exception]] = []
        for platform_type, service in self._services.items():
            try:
                await service.shutdown()
            except Exception as exc:
                logger.error("Error shutting down %s service: %s", platform_type, exc)
                failures.append((platform_type, exc))
        self._services = {}
        self._client = None
        logger.info("Connector shutdown complete")
        return failures

    async def __aenter__(self) -> "SourceConnector":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()
