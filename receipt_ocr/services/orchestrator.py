"""
Provider orchestration for the OCR suggestion pipeline.

Given an upload, the orchestrator picks an extraction route from an ordered
decision table, runs its strategies one at a time and falls back to the next
strategy when one fails. Extracted text is turned into field suggestions
(with vendor memory) and an expense category.

Only the newest request of a session matters. Every resumption after a
suspension point re-checks the request token; results of superseded requests
are discarded without touching status, quota or vendor memory.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from ..core.config import settings
from ..core.errors import (
    EmptyResultError,
    OcrPipelineError,
    StaleRequestError,
    TransportError,
    UnsupportedInputError,
)
from ..models.ocr import (
    ExtractedText,
    ExtractionRequest,
    MediaKind,
    OcrMode,
    OcrSuggestion,
    Provider,
    ProviderDecision,
    SuggestionResult,
)
from .category import infer_category
from .cloud_ocr import CloudOcrClient
from .field_extractor import extract_fields
from .local_ocr import LocalOcrEngine
from .normalizer import iter_pdf_page_texts, normalize_ocr_text, prepare_image
from .quota import QuotaTracker
from .vendor_memory import VendorMemory

StatusListener = Callable[[ExtractionRequest, str], None]


class PipelineSession:
    """
    The single controlling context for one client's pipeline runs.

    Owns the current request token. Issuing a new request supersedes every
    earlier one; there is no other cancellation mechanism.
    """

    def __init__(self, session_id: str = "default"):
        self.session_id = session_id
        self._token = 0
        self.status = ""
        self.request: ExtractionRequest | None = None
        self.result: SuggestionResult | None = None

    @property
    def current_token(self) -> int:
        return self._token

    def issue(self, file_ref: str, media_kind: MediaKind, mode: OcrMode = OcrMode.AUTO) -> ExtractionRequest:
        self._token += 1
        self.request = ExtractionRequest(
            file_ref=file_ref, media_kind=media_kind, token=self._token, mode=mode
        )
        self.status = ""
        self.result = None
        return self.request

    def invalidate(self) -> int:
        """Supersede any in-flight request without starting a new one (form reset)."""
        self._token += 1
        self.request = None
        self.status = ""
        self.result = None
        return self._token

    def is_current(self, token: int) -> bool:
        return token == self._token

    def ensure_current(self, token: int) -> None:
        if not self.is_current(token):
            raise StaleRequestError(f"Request {token} superseded by {self._token}.")

    def report(self, token: int, status: str) -> bool:
        """Set the status text if ``token`` is still current."""
        if not self.is_current(token):
            return False
        self.status = status
        return True


class SessionRegistry:
    """One PipelineSession per client id."""

    def __init__(self):
        self._sessions: dict[str, PipelineSession] = {}

    def get(self, session_id: str) -> PipelineSession:
        if session_id not in self._sessions:
            self._sessions[session_id] = PipelineSession(session_id)
        return self._sessions[session_id]

    def clear(self) -> None:
        self._sessions.clear()


@dataclass(frozen=True)
class Capabilities:
    """Snapshot of what each provider can do right now."""
    cloud_reason: str | None  # None = configured and within quota
    local_reason: str | None  # None = engine available
    pdf_text_available: bool

    @property
    def cloud_available(self) -> bool:
        return self.cloud_reason is None

    @property
    def local_available(self) -> bool:
        return self.local_reason is None


def _always(caps: Capabilities) -> bool:
    return True


def _cloud(caps: Capabilities) -> bool:
    return caps.cloud_available


def _local(caps: Capabilities) -> bool:
    return caps.local_available


def _pdf_text(caps: Capabilities) -> bool:
    return caps.pdf_text_available


@dataclass(frozen=True)
class Step:
    provider: Provider
    enabled: Callable[[Capabilities], bool]


@dataclass(frozen=True)
class Route:
    """
    One row of the decision table.

    ``steps`` are tried in order; a step is skipped when its predicate is
    false at the time it is reached.
    """
    name: str
    applies: Callable[[ExtractionRequest, Capabilities], bool]
    steps: tuple[Step, ...]
    label: str
    unavailable: Callable[[Capabilities], str]


def _join_reasons(*reasons: str | None) -> str:
    return " ".join(r for r in reasons if r) or "No provider available."


ROUTES: tuple[Route, ...] = (
    Route(
        name="force-local-pdf",
        applies=lambda r, c: (
            r.mode == OcrMode.FORCE_LOCAL and r.media_kind == MediaKind.PDF and c.pdf_text_available
        ),
        steps=(Step(Provider.PDF_TEXT, _always), Step(Provider.CLOUD_OCR, _cloud)),
        label="Local OCR unavailable",
        unavailable=lambda c: _join_reasons(c.cloud_reason),
    ),
    Route(
        name="force-local-image",
        applies=lambda r, c: r.mode == OcrMode.FORCE_LOCAL and r.media_kind == MediaKind.IMAGE,
        steps=(Step(Provider.LOCAL_OCR, _local),),
        label="Local OCR unavailable",
        unavailable=lambda c: _join_reasons(c.local_reason),
    ),
    Route(
        name="force-cloud",
        applies=lambda r, c: r.mode == OcrMode.FORCE_CLOUD,
        steps=(Step(Provider.CLOUD_OCR, _always),),
        label="Cloud OCR unavailable",
        unavailable=lambda c: _join_reasons(c.cloud_reason),
    ),
    Route(
        name="auto-pdf",
        applies=lambda r, c: r.mode == OcrMode.AUTO and r.media_kind == MediaKind.PDF,
        steps=(Step(Provider.PDF_TEXT, _pdf_text), Step(Provider.CLOUD_OCR, _cloud)),
        label="PDF text unavailable",
        unavailable=lambda c: _join_reasons(
            None if c.pdf_text_available else "PDF text extraction is disabled.",
            c.cloud_reason,
        ),
    ),
    Route(
        name="auto-image",
        applies=lambda r, c: r.mode == OcrMode.AUTO and r.media_kind == MediaKind.IMAGE,
        steps=(Step(Provider.CLOUD_OCR, _cloud), Step(Provider.LOCAL_OCR, _local)),
        label="OCR unavailable",
        unavailable=lambda c: _join_reasons(c.cloud_reason, c.local_reason),
    ),
)


def select_route(request: ExtractionRequest, caps: Capabilities,
                 routes: tuple[Route, ...] = ROUTES) -> Route:
    """
    First route whose predicate matches.

    Raises:
        UnsupportedInputError: No route handles this request (e.g. local-only
            mode for a PDF when PDF text extraction is unavailable)
    """
    for route in routes:
        if route.applies(request, caps):
            return route
    if request.mode == OcrMode.FORCE_LOCAL and request.media_kind == MediaKind.PDF:
        raise UnsupportedInputError("Local OCR cannot read PDFs without PDF text extraction.")
    raise UnsupportedInputError(f"No OCR route for {request.media_kind.value} in {request.mode.value} mode.")


def summarize(suggestion: OcrSuggestion | None) -> str:
    if suggestion is None:
        return "OCR complete. No suggestions found."
    parts = []
    if suggestion.date:
        parts.append(f"Date: {suggestion.date}")
    if suggestion.vendor:
        parts.append(f"Vendor: {suggestion.vendor}")
    if suggestion.location:
        parts.append(f"Location: {suggestion.location}")
    if suggestion.total is not None:
        parts.append(f"Total: ${suggestion.total:,.2f}")
    return "Suggestions ready. " + " · ".join(parts)


class ProviderOrchestrator:
    """
    Runs one ExtractionRequest through the decision table.

    Side effects per completed run: at most one quota increment (cloud OCR
    only) and at most one vendor memory update (confident memory match).
    """

    def __init__(
        self,
        cloud: CloudOcrClient,
        local: LocalOcrEngine,
        quota: QuotaTracker,
        memory: VendorMemory,
        pdf_text_enabled: bool | None = None,
        max_dim: int | None = None,
        routes: tuple[Route, ...] = ROUTES,
    ):
        self.cloud = cloud
        self.local = local
        self.quota = quota
        self.memory = memory
        self.pdf_text_enabled = settings.pdf_text_enabled if pdf_text_enabled is None else pdf_text_enabled
        self.max_dim = max_dim or settings.ocr_max_dim
        self.routes = routes
        self._listeners: list[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> None:
        """Receive status updates for current requests (display only)."""
        self._listeners.append(listener)

    def capabilities(self) -> Capabilities:
        return Capabilities(
            cloud_reason=self.cloud.blocking_reason(),
            local_reason=self.local.blocking_reason(),
            pdf_text_available=self.pdf_text_enabled,
        )

    def _report(self, session: PipelineSession, request: ExtractionRequest, status: str) -> None:
        if not session.report(request.token, status):
            return
        for listener in self._listeners:
            listener(request, status)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _pdf_text(self, session: PipelineSession, request: ExtractionRequest, data: bytes) -> ExtractedText:
        self._report(session, request, "Reading PDF text...")
        pages = iter_pdf_page_texts(data)
        chunks = []
        while True:
            try:
                page = await asyncio.to_thread(next, pages, None)
            except Exception as e:
                # Malformed PDFs surface as arbitrary exception types from PyPDF2
                raise TransportError(f"Could not read PDF ({e}).") from e
            session.ensure_current(request.token)
            if page is None:
                break
            chunks.append(page)
            self._report(session, request, f"Reading PDF text... page {len(chunks)}")

        text = "\n".join(chunks).strip()
        if not text:
            raise EmptyResultError("No text layer found in PDF.")
        return ExtractedText(provider=Provider.PDF_TEXT, text=text)

    async def _cloud_ocr(self, session: PipelineSession, request: ExtractionRequest, data: bytes) -> ExtractedText:
        self._report(session, request, "Sending to cloud OCR...")
        if request.media_kind == MediaKind.IMAGE:
            data = await asyncio.to_thread(prepare_image, data, self.max_dim)
            session.ensure_current(request.token)

        extracted = await asyncio.to_thread(self.cloud.analyze, data)
        session.ensure_current(request.token)

        state = await asyncio.to_thread(self.quota.increment)
        logger.info(
            "Cloud OCR call completed",
            token=request.token,
            remaining=state.remaining,
        )
        return extracted

    async def _local_ocr(self, session: PipelineSession, request: ExtractionRequest, data: bytes) -> ExtractedText:
        if request.media_kind != MediaKind.IMAGE:
            raise UnsupportedInputError("Local OCR only reads images.")

        self._report(session, request, "Preprocessing image...")
        image = await asyncio.to_thread(prepare_image, data, self.max_dim)
        session.ensure_current(request.token)

        loop = asyncio.get_running_loop()

        def on_progress(pct: int):
            loop.call_soon_threadsafe(
                self._report, session, request, f"Recognizing text... {pct}%"
            )

        self._report(session, request, "Reading receipt...")
        text = await asyncio.to_thread(self.local.recognize, image, on_progress)
        session.ensure_current(request.token)
        return ExtractedText(provider=Provider.LOCAL_OCR, text=text)

    async def _run_strategy(self, provider: Provider, session: PipelineSession,
                            request: ExtractionRequest, data: bytes) -> ExtractedText:
        strategies = {
            Provider.PDF_TEXT: self._pdf_text,
            Provider.CLOUD_OCR: self._cloud_ocr,
            Provider.LOCAL_OCR: self._local_ocr,
        }
        return await strategies[provider](session, request, data)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _suggest(self, session: PipelineSession, request: ExtractionRequest,
                       extracted: ExtractedText, decision: ProviderDecision) -> SuggestionResult | None:
        text = normalize_ocr_text(extracted.text)

        memory_vendor = None
        if not extracted.vendor:
            memory_vendor = await asyncio.to_thread(self.memory.match, text)
            if not session.is_current(request.token):
                return None

        # Provider fields win; the text parsers fill whatever is left
        parsed = extract_fields(text, vendor=extracted.vendor or memory_vendor) or OcrSuggestion()
        suggestion = OcrSuggestion.build(
            date=extracted.date or parsed.date,
            vendor=parsed.vendor,
            location=extracted.location or parsed.location,
            total=extracted.total if extracted.total is not None else parsed.total,
        )
        category = infer_category(text, parsed.vendor)

        if memory_vendor:
            await asyncio.to_thread(self.memory.learn, text, memory_vendor)
            if not session.is_current(request.token):
                return None

        status = summarize(suggestion)
        result = SuggestionResult(
            token=request.token,
            decision=decision,
            status=status,
            suggestion=suggestion,
            category=category,
            text=text,
            vendor_from_memory=memory_vendor is not None,
        )
        session.result = result
        self._report(session, request, status)
        return result

    def _finish_without_text(self, session: PipelineSession, request: ExtractionRequest,
                             status: str) -> SuggestionResult:
        result = SuggestionResult(
            token=request.token,
            decision=ProviderDecision(provider=Provider.NONE, reason=status),
            status=status,
        )
        session.result = result
        self._report(session, request, status)
        return result

    async def run(self, session: PipelineSession, request: ExtractionRequest,
                  data: bytes) -> SuggestionResult | None:
        """
        Extract suggestions for ``request``.

        Returns:
            SuggestionResult (possibly with no suggestion and a blocking
            reason as status), or None if the request was superseded
        """
        if not session.is_current(request.token):
            logger.info("Discarding stale request before start", token=request.token)
            return None

        # Checking the local engine may spawn the tesseract binary
        caps = await asyncio.to_thread(self.capabilities)
        if not session.is_current(request.token):
            return None
        try:
            route = select_route(request, caps, self.routes)
        except UnsupportedInputError as e:
            logger.warning("No extraction route", token=request.token, reason=e.reason)
            return self._finish_without_text(session, request, e.reason)

        logger.info(
            "OCR route selected",
            token=request.token,
            route=route.name,
            mode=request.mode.value,
            media_kind=request.media_kind.value,
        )

        last_error: OcrPipelineError | None = None
        for step in route.steps:
            # Re-evaluated per step: quota or engine state may have changed
            caps = await asyncio.to_thread(self.capabilities)
            if not session.is_current(request.token):
                return None
            if not step.enabled(caps):
                logger.debug("Skipping provider", provider=step.provider.value, route=route.name)
                continue

            try:
                extracted = await self._run_strategy(step.provider, session, request, data)
            except StaleRequestError:
                logger.info("Discarding superseded result", token=request.token, provider=step.provider.value)
                return None
            except OcrPipelineError as e:
                error = e
            except Exception as e:
                logger.opt(exception=e).error(
                    "Unexpected OCR provider error",
                    token=request.token,
                    provider=step.provider.value,
                )
                error = TransportError(f"Unexpected {step.provider.value} failure ({e}).")
            else:
                decision = ProviderDecision(
                    provider=step.provider,
                    reason=f"{step.provider.value} succeeded via {route.name} route",
                )
                return await self._suggest(session, request, extracted, decision)

            if not session.is_current(request.token):
                return None
            last_error = error
            logger.warning(
                "OCR provider failed, trying next fallback",
                token=request.token,
                provider=step.provider.value,
                error_type=type(error).__name__,
                reason=error.reason,
            )
            self._report(session, request, error.reason)

        if last_error is not None:
            status = f"{route.label}: {last_error.reason}"
        else:
            caps = await asyncio.to_thread(self.capabilities)
            if not session.is_current(request.token):
                return None
            status = f"{route.label}: {route.unavailable(caps)}"
        logger.warning("OCR fallback chain exhausted", token=request.token, route=route.name, status=status)
        return self._finish_without_text(session, request, status)

    async def submit(self, session: PipelineSession, file_ref: str, media_kind: MediaKind,
                     data: bytes, mode: OcrMode = OcrMode.AUTO) -> SuggestionResult | None:
        """Issue a new request on ``session`` (superseding older ones) and run it."""
        request = session.issue(file_ref, media_kind, mode)
        return await self.run(session, request, data)

    def accept(self, session: PipelineSession, token: int, text: str, vendor: str):
        """
        The user confirmed ``vendor`` for the result of request ``token``.

        Returns:
            The updated vendor memory entry, or None if stale or not learned
        """
        if not session.is_current(token):
            logger.info("Ignoring confirmation for superseded request", token=token)
            return None
        return self.memory.learn(text, vendor)
