"""``stagewise run``: execute one research session.

Progress events stream to stdout as JSON lines; logs go to stderr. The final
report is written to ``--output`` or, without it, printed after the event
stream.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from stagewise.config.research import ResearchConfig
from stagewise.core.errors.research import ConfigurationInvalidError
from stagewise.core.providers import OpenAIGenerationProvider
from stagewise.core.research.models.deep_research import ResearchRequest
from stagewise.core.research.models.enums import EventType
from stagewise.core.research.models.events import ProgressEvent
from stagewise.core.research.providers import create_search_provider
from stagewise.core.research.workflows.deep_research import (
    DeepResearchWorkflow,
    JsonLinesEventSink,
)

logger = logging.getLogger(__name__)


def _fail(message: str, exit_code: int = 1) -> None:
    """Emit an error event on stdout and exit."""
    click.echo(ProgressEvent(event_type=EventType.ERROR, message=message).to_json_line())
    sys.exit(exit_code)


@click.command("run")
@click.argument("topic")
@click.option("--context", default=None, help="Extra context for the research topic.")
@click.option("--max-depth", type=int, default=None, help="Tree depth levels per stage (1-3).")
@click.option("--max-breadth", type=int, default=None, help="Nodes per rung and follow-ups per expansion (2-5).")
@click.option("--stage-count", type=int, default=None, help="Number of research stages (1-5).")
@click.option("--queries-per-stage", type=int, default=None, help="Initial queries per stage (1-5).")
@click.option(
    "--provider",
    type=click.Choice(["tavily", "exa"], case_sensitive=False),
    default=None,
    help="Search provider (default from config).",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write the final report to this file.",
)
@click.option("--config", "config_file", type=click.Path(dir_okay=False), default=None, help="TOML config file.")
@click.pass_context
def run_cmd(
    ctx: click.Context,
    topic: str,
    context: Optional[str],
    max_depth: Optional[int],
    max_breadth: Optional[int],
    stage_count: Optional[int],
    queries_per_stage: Optional[int],
    provider: Optional[str],
    output: Optional[str],
    config_file: Optional[str],
) -> None:
    """Research TOPIC and produce a cited report."""
    parent_config = (ctx.obj or {}).get("config_file")
    config = ResearchConfig.from_env(config_file or parent_config)
    if provider:
        config.search_provider = provider.lower()
    config.setup_logging()

    try:
        configuration = config.default_configuration(
            max_depth=max_depth,
            max_breadth=max_breadth,
            stage_count=stage_count,
            queries_per_stage=queries_per_stage,
        )
    except ConfigurationInvalidError as e:
        _fail(str(e))
        return

    try:
        search = create_search_provider(
            config.search_provider,
            config.get_search_api_key(),
            timeout=config.search_timeout,
            max_retries=config.max_retries,
        )
        generation = OpenAIGenerationProvider(
            api_key=config.openai_api_key,
            default_model=config.model,
            base_url=config.openai_base_url,
            timeout=config.generation_timeout,
            max_retries=config.max_retries,
        )
    except ValueError as e:
        _fail(str(e))
        return

    workflow = DeepResearchWorkflow(config, search, generation, sink=JsonLinesEventSink(sys.stdout))
    request = ResearchRequest(topic=topic, context=context, configuration=configuration)

    try:
        result = asyncio.run(workflow.run(request))
    except KeyboardInterrupt:
        _fail("Research interrupted", exit_code=130)
        return

    if not result.success:
        sys.exit(1)

    logger.info("Token usage: %s", result.session.token_usage.summary())
    if output:
        Path(output).write_text(result.content, encoding="utf-8")
        logger.info("Report written to %s", output)
    else:
        click.echo(result.content)
