"""
Site Cloner.

Scrapes a source website and derives Shopify theme settings and product copy
from it with Claude, tracking each generation through a persisted status
pipeline built on LangGraph.
"""

__version__ = "1.0.0"
__author__ = "Site Cloner Team"

# Lazy imports to avoid circular dependencies
def get_pipeline():
    """Get the GenerationPipeline class (lazy import)."""
    from site_cloner.pipeline.orchestrator import GenerationPipeline
    return GenerationPipeline

__all__ = ["get_pipeline", "__version__"]
