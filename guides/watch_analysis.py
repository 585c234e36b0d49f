"""Follow an analysis started by another process.

Needs ``SUPABASE_URL``/``SUPABASE_KEY`` and a shared progress store, for
example ``MARKETSENSE_STORE_URL=redis://localhost:6379/0``.
"""

import asyncio
import sys

from marketsense import AnalysisSession, get_backend, get_store, load_config


async def main(requirement_id: str):
    config = load_config()
    backend = get_backend(config)
    session = AnalysisSession(
        requirement_id, get_store(config=config), backend, config.pipeline
    )

    try:
        if not await session.restore():
            print("Nothing to watch, loading current state")
            state = await session.refresh()
        else:
            print(f"Watching {requirement_id} from step {session.tracker.current_step_index + 1}")
            await session.watch()
            state = session.state or await session.refresh()
        print("Status:", state.market_analysis.status if state.market_analysis else "none")
    finally:
        await backend.close()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1]))
