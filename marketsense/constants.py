"""Shared constants for marketsense."""

STATUS_KEY_PREFIX = "market_analysis:status:"
STEPS_KEY_PREFIX = "market_analysis:steps:"
CURRENT_STEP_KEY_PREFIX = "market_analysis:current_step:"

DEFAULT_QUERY_TOTAL = 5
DEFAULT_SOURCE_TOTAL = 9

# (display name, initial total) in pipeline order
DEFAULT_STEPS = (
    ("Generating search queries", None),
    ("Searching the web", DEFAULT_QUERY_TOTAL),
    ("Scraping content", DEFAULT_SOURCE_TOTAL),
    ("Summarizing research", DEFAULT_SOURCE_TOTAL),
    ("Creating market analysis", None),
)

GENERATE_QUERIES_STAGE = "generate-market-queries"
PROCESS_QUERIES_STAGE = "process-market-queries"
SCRAPE_STAGE = "scrape-research-urls"
SUMMARIZE_STAGE = "summarize-research-content"
ANALYZE_STAGE = "analyze-market"

STAGE_NAMES = (
    GENERATE_QUERIES_STAGE,
    PROCESS_QUERIES_STAGE,
    SCRAPE_STAGE,
    SUMMARIZE_STAGE,
    ANALYZE_STAGE,
)

REQUIREMENTS_TABLE = "requirements"
REQUIREMENT_ANALYSIS_TABLE = "requirement_analysis"
MARKET_ANALYSIS_TABLE = "market_analysis"
QUERIES_TABLE = "firecrawl_queries"
SOURCES_TABLE = "market_research_sources"
FLOW_TRACKING_TABLE = "requirement_flow_tracking"
