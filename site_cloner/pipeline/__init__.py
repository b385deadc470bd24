"""Pipeline module for site cloner generations."""

from site_cloner.pipeline.orchestrator import (
    GenerationPipeline,
    GenerationStateDict,
    classify_failure,
    run_generation_pipeline,
    track_stage,
)
from site_cloner.pipeline.worker_pool import GenerationWorkerPool

__all__ = [
    "GenerationPipeline",
    "GenerationStateDict",
    "GenerationWorkerPool",
    "classify_failure",
    "run_generation_pipeline",
    "track_stage",
]
