"""Run a market analysis end to end against in-memory backends."""

import asyncio

from marketsense import AnalysisSession, PipelineSettings
from marketsense.constants import (
    ANALYZE_STAGE,
    GENERATE_QUERIES_STAGE,
    MARKET_ANALYSIS_TABLE,
    PROCESS_QUERIES_STAGE,
    QUERIES_TABLE,
    REQUIREMENT_ANALYSIS_TABLE,
    REQUIREMENTS_TABLE,
    SCRAPE_STAGE,
    SOURCES_TABLE,
    SUMMARIZE_STAGE,
)
from marketsense.remote import InMemoryRemoteBackend
from marketsense.store import InMemoryProgressStore


def build_backend() -> InMemoryRemoteBackend:
    backend = InMemoryRemoteBackend()
    backend.seed(
        REQUIREMENTS_TABLE,
        {"id": "req-42", "project_name": "Pantry Pal", "industry_type": "Food tech"},
    )
    backend.seed(
        REQUIREMENT_ANALYSIS_TABLE,
        {
            "requirement_id": "req-42",
            "problem_statement": "Households throw away food they forgot they had",
            "proposed_solution": "Receipt scanning with expiry reminders",
        },
    )

    async def generate(payload):
        for topic in ("food waste apps", "grocery receipt OCR", "meal planning market"):
            await backend.insert(
                QUERIES_TABLE, {"requirement_id": payload["requirementId"], "query": topic}
            )
        return {"success": True}

    async def process(payload):
        for index in range(6):
            await backend.insert(
                SOURCES_TABLE,
                {
                    "requirement_id": payload["requirementId"],
                    "title": f"Report {index}",
                    "url": f"https://example.com/report/{index}",
                },
            )
        return {"success": True}

    remaining = [4, 1, 0]

    async def summarize(payload):
        return {"success": True, "remaining": remaining.pop(0)}

    async def analyze(payload):
        await backend.update(
            MARKET_ANALYSIS_TABLE,
            {"status": "Completed", "market_trends": "Food waste tools are gaining users"},
            {"requirement_id": payload["requirementId"]},
        )
        return {"success": True}

    async def scrape(payload):
        return {"success": True}

    backend.register_stage(GENERATE_QUERIES_STAGE, generate)
    backend.register_stage(PROCESS_QUERIES_STAGE, process)
    backend.register_stage(SCRAPE_STAGE, scrape)
    backend.register_stage(SUMMARIZE_STAGE, summarize)
    backend.register_stage(ANALYZE_STAGE, analyze)
    return backend


async def main():
    store = InMemoryProgressStore()
    settings = PipelineSettings(summarize_delay=0.1, completion_delay=0.1)
    session = AnalysisSession("req-42", store, build_backend(), settings)

    state = await session.refresh()
    print(f"Loaded {state.requirement.project_name} ({state.market_analysis.status})")

    run = await session.start_analysis()
    for step in run.steps:
        print(f"  {step.name}: {step.status.value} {step.current or ''}/{step.total or ''}")
    print(f"Summarize re-invoked {run.summarize_attempts} times")

    # reloading reconciles the finished run and clears local progress
    state = await session.refresh()
    print("Analysis:", state.market_analysis.market_trends)
    print("Persisted keys left:", store.keys())


if __name__ == "__main__":
    asyncio.run(main())
