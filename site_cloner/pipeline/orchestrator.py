"""
Generation pipeline orchestrator using LangGraph.

Sequences one generation through its stages and persists a status write at
every transition. The status row is the only progress signal a poller sees:

    pending -> scraping(10) -> scraping(25) -> analyzing(30) -> analyzing(45)
            -> analyzing(50) -> analyzing(60) -> completed(100)

Any stage may instead end in ``failed(0)`` with an error message.

Features:
    - Stateful execution with LangGraph StateGraph
    - Every stage returns either a state patch or a tagged ``StageFailure``
    - A conditional edge after each stage routes to the next stage or to ``fail``
    - ``run`` never raises; callers receive a ``GenerationResult``
    - Progress callbacks and per-stage timing in structured logs
"""

import json
import time
from functools import wraps
from typing import Any, Callable, Literal, Optional, TypedDict

from langgraph.graph import END, StateGraph

from site_cloner.analyzers.prompts import get_prompt
from site_cloner.analyzers.response_parser import (
    parse_products_response,
    parse_theme_response,
    validate_ai_response,
)
from site_cloner.config.settings import Settings, get_settings
from site_cloner.extractors.site_scraper import SiteScraper, validate_scraped_data
from site_cloner.models.schemas import (
    FailureKind,
    GeneratedProduct,
    GenerationContext,
    GenerationResult,
    GenerationStatus,
    ScrapedData,
    StageFailure,
    ThemeSettings,
)
from site_cloner.services.generation_store import GenerationStore
from site_cloner.services.llm_service import CompletionClient
from site_cloner.utils.logger import LogContext, get_logger
from site_cloner.utils.retry import (
    AIGenerationError,
    PersistenceError,
    RateLimitError,
    ScrapingError,
)

logger = get_logger(__name__)

ProgressCallback = Callable[[int, str], None]


# =============================================================================
# Progress Checkpoints
# =============================================================================

PROGRESS_SCRAPE_STARTED = 10
PROGRESS_SCRAPE_DONE = 25
PROGRESS_THEME_STARTED = 30
PROGRESS_THEME_DONE = 45
PROGRESS_PRODUCTS_STARTED = 50
PROGRESS_PRODUCTS_DONE = 60
PROGRESS_COMPLETE = 100
PROGRESS_FAILED = 0

UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"


# =============================================================================
# Pipeline State Definition (TypedDict for LangGraph)
# =============================================================================

class GenerationStateDict(TypedDict, total=False):
    """
    LangGraph state for one generation run.

    Stage outputs are stored serialized (model dumps) and flow linearly from
    one stage to the next.
    """
    # Identifiers
    generation_id: str
    shop_id: str
    shop_domain: str
    source_url: str

    # Stage outputs
    scraped_data: Optional[dict]
    theme: Optional[dict]
    products: Optional[list[dict]]

    # Outcome
    failure: Optional[dict]  # Serialized StageFailure
    status: str
    progress: int

    step_timings: dict  # Stage name -> duration_ms


# =============================================================================
# Stage Wrapper
# =============================================================================

def classify_failure(error: BaseException) -> FailureKind:
    if isinstance(error, ScrapingError):
        return FailureKind.SCRAPING
    if isinstance(error, (AIGenerationError, RateLimitError)):
        return FailureKind.AI_GENERATION
    if isinstance(error, PersistenceError):
        return FailureKind.PERSISTENCE
    return FailureKind.UNEXPECTED


def track_stage(stage: str):
    """
    Decorator turning a stage node into a tagged-outcome node.

    A stage that returns normally yields its state patch plus timing. A
    stage that raises yields ``{"failure": StageFailure}`` instead.
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(self, state: GenerationStateDict) -> dict[str, Any]:
            start_time = time.monotonic()
            logger.info("Starting stage", stage=stage)

            try:
                result = await func(self, state)
            except Exception as e:
                duration_ms = int((time.monotonic() - start_time) * 1000)
                failure = StageFailure(
                    stage=stage,
                    kind=classify_failure(e),
                    message=str(e) or UNKNOWN_ERROR_MESSAGE,
                )
                logger.error(
                    "Stage failed",
                    stage=stage,
                    kind=failure.kind,
                    error=failure.message,
                    error_type=type(e).__name__,
                    duration_ms=duration_ms,
                )
                return {"failure": failure.model_dump()}

            duration_ms = int((time.monotonic() - start_time) * 1000)
            step_timings = dict(state.get("step_timings") or {})
            step_timings[stage] = duration_ms
            result["step_timings"] = step_timings

            logger.info("Completed stage", stage=stage, duration_ms=duration_ms)
            return result

        return wrapper
    return decorator


# =============================================================================
# Main Pipeline Class
# =============================================================================

class GenerationPipeline:
    """
    LangGraph-based generation pipeline.

    Stages run strictly in order on one task. The pipeline owns none of its
    collaborators; callers construct and close them.

    Example:
        >>> pipeline = GenerationPipeline(store, completion_client, scraper)
        >>> result = await pipeline.run(context)
        >>> result.success, result.products_created
        (True, 4)
    """

    def __init__(
        self,
        store: GenerationStore,
        completion_client: CompletionClient,
        scraper: SiteScraper,
        settings: Optional[Settings] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Args:
            store: Generation persistence
            completion_client: Client for theme and product completions
            scraper: Source page extractor
            settings: Application settings (uses defaults if not provided)
            progress_callback: Called as ``callback(progress, status)`` after
                every persisted status write
        """
        self.store = store
        self.completion_client = completion_client
        self.scraper = scraper
        self.settings = settings or get_settings()
        self.progress_callback = progress_callback
        self._graph = self._build_graph()

    def _build_graph(self):
        """
        Build the LangGraph state machine.

        Graph structure:
            scrape -> generate_theme -> generate_products -> finalize -> END
               |            |                  |                |
               +------------+--------+---------+----------------+
                                     v
                                   fail -> END
        """
        graph = StateGraph(GenerationStateDict)

        graph.add_node("scrape", self._scrape_node)
        graph.add_node("generate_theme", self._generate_theme_node)
        graph.add_node("generate_products", self._generate_products_node)
        graph.add_node("finalize", self._finalize_node)
        graph.add_node("fail", self._fail_node)

        graph.set_entry_point("scrape")

        for stage, next_stage in (
            ("scrape", "generate_theme"),
            ("generate_theme", "generate_products"),
            ("generate_products", "finalize"),
            ("finalize", END),
        ):
            graph.add_conditional_edges(
                stage,
                self._route_after_stage,
                {"continue": next_stage, "fail": "fail"},
            )

        graph.add_edge("fail", END)

        return graph.compile()

    def _route_after_stage(self, state: GenerationStateDict) -> Literal["continue", "fail"]:
        return "fail" if state.get("failure") else "continue"

    # =========================================================================
    # Status Writes
    # =========================================================================

    async def _write_status(
        self,
        generation_id: str,
        status: GenerationStatus,
        progress: int,
        **payload: Any,
    ) -> None:
        try:
            await self.store.update_generation(
                generation_id,
                status=status.value,
                progress=progress,
                **payload,
            )
        except Exception as e:
            raise PersistenceError(f"Failed to update generation status: {e}") from e

        logger.debug("Generation status written", status=status.value, progress=progress)

        if self.progress_callback:
            try:
                self.progress_callback(progress, status.value)
            except Exception as cb_err:
                logger.warning("Progress callback failed", error=str(cb_err))

    # =========================================================================
    # Node Implementations
    # =========================================================================

    @track_stage("scrape")
    async def _scrape_node(self, state: GenerationStateDict) -> dict[str, Any]:
        """
        Stage 1: fetch the source page and gate it on content sufficiency.
        """
        generation_id = state["generation_id"]
        source_url = state["source_url"]

        await self._write_status(generation_id, GenerationStatus.SCRAPING, PROGRESS_SCRAPE_STARTED)

        scraped_data = await self.scraper.scrape(source_url)

        if not validate_scraped_data(scraped_data, self.settings.min_body_text_chars):
            raise ScrapingError("Insufficient data scraped from URL", source_url)

        await self._write_status(
            generation_id,
            GenerationStatus.SCRAPING,
            PROGRESS_SCRAPE_DONE,
            scraped_data=scraped_data.to_json(),
        )

        logger.info(
            "Scraping complete",
            colors=len(scraped_data.colors),
            products=len(scraped_data.products),
        )

        return {
            "scraped_data": scraped_data.model_dump(),
            "status": GenerationStatus.SCRAPING.value,
            "progress": PROGRESS_SCRAPE_DONE,
        }

    async def _run_prompt(self, prompt_name: str, scraped_data: ScrapedData) -> str:
        config, system_prompt, build_prompt = get_prompt(prompt_name)
        return await self.completion_client.complete(
            build_prompt(scraped_data),
            system_prompt=system_prompt,
            response_format="json_object",
            temperature=config.recommended_temperature,
            max_tokens=config.recommended_max_tokens,
        )

    @track_stage("generate_theme")
    async def _generate_theme_node(self, state: GenerationStateDict) -> dict[str, Any]:
        """
        Stage 2: derive theme settings from the scrape.
        """
        generation_id = state["generation_id"]
        scraped_data = ScrapedData.model_validate(state["scraped_data"])

        await self._write_status(generation_id, GenerationStatus.ANALYZING, PROGRESS_THEME_STARTED)

        response = await self._run_prompt("theme_generation", scraped_data)
        theme = parse_theme_response(response)

        await self._write_status(generation_id, GenerationStatus.ANALYZING, PROGRESS_THEME_DONE)

        logger.info("Theme settings generated", brand_name=theme.brand_name)

        return {
            "theme": theme.model_dump(),
            "status": GenerationStatus.ANALYZING.value,
            "progress": PROGRESS_THEME_DONE,
        }

    @track_stage("generate_products")
    async def _generate_products_node(self, state: GenerationStateDict) -> dict[str, Any]:
        """
        Stage 3: write product copy and snapshot the combined model output.
        """
        generation_id = state["generation_id"]
        scraped_data = ScrapedData.model_validate(state["scraped_data"])
        theme = ThemeSettings.model_validate(state["theme"])

        await self._write_status(generation_id, GenerationStatus.ANALYZING, PROGRESS_PRODUCTS_STARTED)

        response = await self._run_prompt("product_generation", scraped_data)
        products = parse_products_response(response)

        ai_response = json.dumps({
            "theme": theme.to_dict(),
            "products": [product.to_dict() for product in products],
        })
        await self._write_status(
            generation_id,
            GenerationStatus.ANALYZING,
            PROGRESS_PRODUCTS_DONE,
            ai_response=ai_response,
        )

        logger.info("Products generated", count=len(products))

        return {
            "products": [product.model_dump() for product in products],
            "status": GenerationStatus.ANALYZING.value,
            "progress": PROGRESS_PRODUCTS_DONE,
        }

    @track_stage("finalize")
    async def _finalize_node(self, state: GenerationStateDict) -> dict[str, Any]:
        """
        Stage 4: content-quality gate, then mark ready for review.

        Theme and product creation in the store is left to the import step.
        """
        generation_id = state["generation_id"]
        theme = ThemeSettings.model_validate(state["theme"])
        products = [GeneratedProduct.model_validate(p) for p in state["products"]]

        if not validate_ai_response(theme, products):
            raise AIGenerationError("AI response validation failed")

        await self._write_status(generation_id, GenerationStatus.COMPLETED, PROGRESS_COMPLETE)

        return {
            "status": GenerationStatus.COMPLETED.value,
            "progress": PROGRESS_COMPLETE,
        }

    async def _fail_node(self, state: GenerationStateDict) -> dict[str, Any]:
        """Terminal node: persist ``failed`` with the captured message."""
        failure = StageFailure.model_validate(state["failure"])
        await self._mark_failed(state["generation_id"], failure.message)
        return {"status": GenerationStatus.FAILED.value, "progress": PROGRESS_FAILED}

    async def _mark_failed(self, generation_id: str, message: str) -> None:
        try:
            await self._write_status(
                generation_id,
                GenerationStatus.FAILED,
                PROGRESS_FAILED,
                error_message=message,
            )
        except PersistenceError as e:
            logger.error("Could not record generation failure", error=str(e))

    # =========================================================================
    # Public API
    # =========================================================================

    async def run(self, context: GenerationContext) -> GenerationResult:
        """
        Execute the pipeline for a pre-created ``pending`` generation.

        Never raises: every failure is persisted as ``failed`` and returned as
        ``GenerationResult(success=False, error=...)``.
        """
        initial_state: GenerationStateDict = {
            "generation_id": context.generation_id,
            "shop_id": context.shop_id,
            "shop_domain": context.shop_domain,
            "source_url": context.source_url,
            "scraped_data": None,
            "theme": None,
            "products": None,
            "failure": None,
            "status": GenerationStatus.PENDING.value,
            "progress": 0,
            "step_timings": {},
        }

        with LogContext(generation_id=context.generation_id):
            logger.info(
                "Starting generation pipeline",
                source_url=context.source_url,
                shop_domain=context.shop_domain,
            )

            try:
                final_state = await self._graph.ainvoke(initial_state)
            except Exception as e:
                message = str(e) or UNKNOWN_ERROR_MESSAGE
                logger.error("Pipeline failed with unexpected error", error=message)
                await self._mark_failed(context.generation_id, message)
                return GenerationResult(success=False, error=message)

            failure = final_state.get("failure")
            if failure:
                logger.warning(
                    "Generation failed",
                    stage=failure["stage"],
                    kind=failure["kind"],
                    error=failure["message"],
                )
                return GenerationResult(success=False, error=failure["message"])

            products_created = len(final_state.get("products") or [])
            logger.info(
                "Generation complete, ready for review",
                products_created=products_created,
                duration_ms=sum(final_state.get("step_timings", {}).values()),
            )
            return GenerationResult(success=True, products_created=products_created)


async def run_generation_pipeline(
    context: GenerationContext,
    pipeline: GenerationPipeline,
) -> GenerationResult:
    """
    Sole entry point for running one generation.

    Args:
        context: Identifies the pre-created ``pending`` generation and its source
        pipeline: Configured pipeline holding the store, client and scraper

    Returns:
        ``GenerationResult``; never raises
    """
    return await pipeline.run(context)
