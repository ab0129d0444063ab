"""Main entry point: runs the agentcore queue worker."""

import asyncio
import signal

from dotenv import load_dotenv

from agentcore.config import PROJECT_ROOT, load_settings
from agentcore.llm import AnthropicProvider
from agentcore.logging_config import get_logger, setup_logging
from agentcore.orchestrator import Orchestrator
from agentcore.queue import TaskQueue

logger = get_logger("agentcore.main")


async def run() -> None:
    """Start the orchestrator and consume the task queue until interrupted."""
    settings = load_settings()

    llm_provider = None
    if settings.anthropic_api_key:
        llm_provider = AnthropicProvider(api_key=settings.anthropic_api_key)
    else:
        logger.warning("ANTHROPIC_API_KEY not set, running without an LLM provider")

    orchestrator = Orchestrator(
        settings=settings,
        llm_provider=llm_provider,
        task_queue=TaskQueue(settings.queue_name, settings.queue),
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    await orchestrator.start()
    logger.info("Worker running on queue %s", settings.queue_name)
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down")
        await orchestrator.stop()


def main():
    """Run the worker."""
    load_dotenv(PROJECT_ROOT / ".env")
    setup_logging()
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
