"""CLI interface for mealmind"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import click

from mealmind.infrastructure.config.config_manager import ConfigManager, ConfigurationError
from mealmind.infrastructure.llm.base import LLMProvider
from mealmind.infrastructure.llm.factory import LLMProviderFactory
from mealmind.infrastructure.retry import compute_delay, is_retryable_error, rules_from_config

logger = logging.getLogger(__name__)


class SyntheticFailure(Exception):
    """Failure assembled from CLI options, used by ``classify``."""

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    logging.getLogger().setLevel(level)


def _die(message: str, verbose: bool = False, exc: Optional[Exception] = None) -> None:
    """Exit with a user-friendly error message"""
    if exc is not None:
        logger.error(message, exc_info=verbose)
    else:
        logger.error(message)
    raise click.ClickException(message)


def _load_config(ctx: click.Context) -> ConfigManager:
    try:
        return ConfigManager(config_path=ctx.obj.get("config_path"))
    except ConfigurationError as e:
        _die(str(e), verbose=ctx.obj.get("verbose", False), exc=e)


def _create_provider_config(config_manager: ConfigManager) -> dict:
    """Create provider configuration dictionary

    Args:
        config_manager: Configuration manager

    Returns:
        Flat provider configuration (LLM settings, retry policy, classification)
    """
    llm_config = config_manager.get_llm_config()
    provider_config = {
        "model": llm_config.model,
        "timeout_ms": llm_config.timeout_ms,
        "temperature": llm_config.temperature,
        "classification": config_manager.get_classification_config().model_dump(),
    }
    provider_config.update(config_manager.get_retry_config().model_dump())
    return provider_config


def _create_llm_provider(
    config_manager: ConfigManager,
    provider_override: Optional[str],
    verbose: bool,
) -> LLMProvider:
    provider_type = provider_override or config_manager.get_llm_config().provider
    logger.info(f"Using LLM provider: {provider_type}")
    try:
        return LLMProviderFactory.create(provider_type, _create_provider_config(config_manager))
    except ValueError as e:
        _die(str(e), verbose=verbose, exc=e)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to .mealmind.yml config file",
)
@click.pass_context
def cli(ctx, verbose: bool, config: Path):
    """mealmind - LLM helper functions with retry and backoff"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("--jitter/--no-jitter", default=True, help="Apply the configured jitter")
@click.pass_context
def delays(ctx, jitter: bool):
    """Print the backoff schedule of the configured retry policy."""
    retry_config = _load_config(ctx).get_retry_config()

    if retry_config.max_attempts <= 1:
        click.echo("No retries configured (max_attempts=1)")
        return

    for attempt in range(1, retry_config.max_attempts):
        delay_ms = compute_delay(
            attempt,
            retry_config.base_delay_ms,
            retry_config.max_delay_ms,
            retry_config.jitter_ratio if jitter else 0.0,
        )
        click.echo(f"attempt {attempt} failed -> wait {delay_ms}ms before attempt {attempt + 1}")


@cli.command()
@click.option("--status", type=int, help="HTTP status carried by the failure")
@click.option("--code", type=str, help="Error code carried by the failure (e.g. ECONNRESET)")
@click.option("--message", type=str, default="", help="Failure message")
@click.pass_context
def classify(ctx, status: Optional[int], code: Optional[str], message: str):
    """Tell whether a failure with the given traits would be retried."""
    rules = rules_from_config(_load_config(ctx).get_classification_config())
    failure = SyntheticFailure(message, status=status, code=code)
    click.echo("retryable" if is_retryable_error(failure, rules) else "not retryable")


@cli.command()
@click.argument("prompt", type=str)
@click.option("--system", "system_prompt", type=str, help="System prompt; switches to JSON output")
@click.option(
    "--provider",
    type=str,
    help="LLM provider to use (mock, openai, gemini). Overrides config.",
)
@click.pass_context
def generate(ctx, prompt: str, system_prompt: Optional[str], provider: Optional[str]):
    """Send PROMPT to an LLM provider and print the reply."""
    verbose = ctx.obj.get("verbose", False)
    config_manager = _load_config(ctx)
    llm_provider = _create_llm_provider(config_manager, provider, verbose)

    try:
        if system_prompt:
            result = asyncio.run(llm_provider.generate_json(system_prompt, prompt))
            click.echo(json.dumps(result, indent=2, ensure_ascii=False))
        else:
            click.echo(asyncio.run(llm_provider.generate_text(prompt)))
    except click.ClickException:
        raise
    except Exception as e:
        _die(f"Generation failed: {e}", verbose=verbose, exc=e)


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == "__main__":
    main()
