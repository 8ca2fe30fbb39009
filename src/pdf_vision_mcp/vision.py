"""Vision/OCR request pipeline.

request -> validate -> cache key -> (cache hit? return) -> materialize
-> provider call -> cache insert -> return

There is no intermediate persisted state: a request either returns a result
(from the cache or from the provider) or fails with a VisionError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .cache import OcrResult, ResultCache, make_cache_key
from .config import ProviderConfig
from .errors import InvalidArgument, SourceResolutionError, VisionError
from .ocr_client import OcrProviderClient
from .sources import InlineSource, PathSource, Source, SourceMaterializer, describe_source, parse_source

logger = logging.getLogger(__name__)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True, slots=True)
class VisionRequest:
    """One vision call: a PDF source plus a page, and optionally an image index."""

    source: Source
    page: int
    index: int | None = None
    use_cache: bool = True

    def validate(self) -> None:
        """Raise InvalidArgument if the request shape is malformed."""
        if not isinstance(self.source, (PathSource, InlineSource)):
            raise InvalidArgument("Field 'source' must be a path or inline source")
        if not _is_int(self.page) or self.page < 1:
            raise InvalidArgument("Field 'page' must be an integer >= 1")
        if self.index is not None and (not _is_int(self.index) or self.index < 0):
            raise InvalidArgument("Field 'index' must be an integer >= 0")
        if not isinstance(self.use_cache, bool):
            raise InvalidArgument("Field 'cache' must be a boolean")


def parse_vision_request(arguments: dict[str, Any]) -> VisionRequest:
    """Build a validated VisionRequest from raw tool arguments."""
    if "source" not in arguments:
        raise InvalidArgument("Missing required field: source")
    if "page" not in arguments:
        raise InvalidArgument("Missing required field: page")

    request = VisionRequest(
        source=parse_source(arguments["source"]),
        page=arguments["page"],
        index=arguments.get("index"),
        use_cache=arguments.get("cache", True),
    )
    request.validate()
    return request


@dataclass(frozen=True, slots=True)
class VisionOutcome:
    """Result plus where it came from: ``hit``, ``miss`` or ``bypass``."""

    result: OcrResult
    cache_status: str

    @property
    def cached(self) -> bool:
        return self.cache_status == "hit"


class VisionOrchestrator:
    """Coordinates cache, materialization and the OCR provider for one request."""

    def __init__(
        self,
        *,
        materializer: SourceMaterializer,
        ocr_client: OcrProviderClient,
        cache: ResultCache,
        provider_config: ProviderConfig,
    ) -> None:
        self._materializer = materializer
        self._ocr_client = ocr_client
        self._cache = cache
        self._provider_config = provider_config

    async def analyze(self, request: VisionRequest) -> VisionOutcome:
        request.validate()

        try:
            identity = await self._materializer.identify(request.source)
        except OSError as exc:
            raise SourceResolutionError("Unable to access PDF source.") from exc

        key = make_cache_key(
            source_identity=identity,
            page=request.page,
            index=request.index,
            provider=self._provider_config,
        )

        if self._cache.should_use(request):
            cached = self._cache.lookup(key)
            if cached is not None:
                logger.info("Cache hit for %s page=%s index=%s", describe_source(request.source), request.page, request.index)
                return VisionOutcome(result=cached, cache_status="hit")
            cache_status = "miss"
        else:
            cache_status = "bypass"

        try:
            image = await self._materializer.materialize(request.source, request.page, request.index)
        except VisionError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise SourceResolutionError(f"Unable to materialize page {request.page}.") from exc

        result = await self._ocr_client.analyze(image, self._provider_config)

        self._cache.insert(key, result)
        return VisionOutcome(result=result, cache_status=cache_status)

    async def get_vision_result(self, request: VisionRequest) -> OcrResult:
        outcome = await self.analyze(request)
        return outcome.result
