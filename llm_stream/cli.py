"""
Command line entry point.

Resolves options (command line, preset, config file), composes the prompt,
builds the provider request and writes deltas to stdout as they arrive.
"""

import argparse
import asyncio
import logging
import sys
from contextlib import aclosing
from pathlib import Path
from typing import Any, List, Optional, TextIO, Tuple

import httpx
import orjson
from pydantic import ValidationError

from llm_stream import __version__
from llm_stream.config import (
    FileConfig,
    ModelSettings,
    load_config,
    resolve_api_key,
    resolve_model_settings,
    settings,
    setup_logging,
)
from llm_stream.models.request import CompletionOptions, ConversationMessage, Request, parse_conversation
from llm_stream.providers.base import BaseProvider
from llm_stream.providers.registry import provider_registry
from llm_stream.services.prompts import build_conversation, compose_prompt
from llm_stream.services.stream import stream_deltas
from llm_stream.utils.exceptions import ConfigError, LLMStreamError, raise_missing_api_key

logger = logging.getLogger(__name__)

STDIN_MARKER = "-"


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI parser. No I/O happens here."""
    p = argparse.ArgumentParser(
        prog="llm-stream",
        description="Stream completions from OpenAI, Anthropic, Google, Mistral and Copilot",
    )
    p.add_argument("prompt", nargs="?", default=None, help="User prompt ('-' reads stdin)")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Provider
    p.add_argument("-a", "--api", default=None, help="Provider: " + ", ".join(provider_registry.get_provider_names()))
    p.add_argument("-m", "--model", default=None)
    p.add_argument("-p", "--preset", default=None, help="Preset name from the config file")
    p.add_argument("--api-key", default=None)
    p.add_argument("--api-env", default=None, help="Environment variable holding the API key")
    p.add_argument("--api-base-url", default=None)
    p.add_argument("--api-version", default=None)

    # Prompt composition
    p.add_argument("-t", "--template", default=None, help="Template name from the config file")
    p.add_argument("--vars", default=None, help="Template variables as a JSON object")
    p.add_argument("--conversation", default=None, help="Prior turns as a JSON array")
    p.add_argument("--file", default=None, help="Extra input file ('-' reads stdin)")
    p.add_argument("--system", default=None)
    p.add_argument("--suffix", default=None)
    p.add_argument("--language", default=None)

    # Sampling
    p.add_argument("--max-tokens", type=int, default=None)
    p.add_argument("--min-tokens", type=int, default=None)
    p.add_argument("--temperature", type=float, default=None)
    p.add_argument("--top-p", type=float, default=None)
    p.add_argument("--top-k", type=int, default=None)

    p.add_argument("--config-file", default=None)
    p.add_argument("--config", action="store_true", help="Print the config file in use and exit")
    p.add_argument("--dir", action="store_true", help="Print the config directory and exit")

    # Inspection
    p.add_argument("--print-conversation", action="store_true", help="Print the conversation sent to the model")
    p.add_argument("--dry-run", action="store_true", help="Print the request instead of sending it")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p


def read_input(value: Optional[str], stdin: TextIO) -> str:
    """Return the text behind a prompt/file argument."""
    if value is None:
        return ""
    if value == STDIN_MARKER:
        return stdin.read()
    return Path(value).expanduser().read_text(encoding="utf-8")


def _parse_json_arg(name: str, raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ConfigError(f"--{name} is not valid JSON: {e}") from e


def prepare(
    args: argparse.Namespace, config: FileConfig, stdin: TextIO = sys.stdin
) -> Tuple[BaseProvider, List[ConversationMessage], CompletionOptions]:
    """Resolve every option into a provider, the conversation and its options."""
    overrides = ModelSettings(
        env=args.api_env,
        key=args.api_key,
        base_url=args.api_base_url,
        model=args.model,
        system=args.system,
        max_tokens=args.max_tokens,
        min_tokens=args.min_tokens,
        version=args.api_version,
        temperature=args.temperature,
        top_p=args.top_p,
        top_k=args.top_k,
    )
    preset = config.get_preset(args.preset) if args.preset else None
    api, resolved = resolve_model_settings(overrides, args.api, preset, config)
    provider = provider_registry.create(api)

    api_key = resolve_api_key(resolved.key, resolved.env, provider.default_env)
    if not api_key:
        raise_missing_api_key(resolved.env or provider.default_env)

    if args.prompt is None and args.file is None:
        raise ConfigError("No prompt given")
    if args.prompt == STDIN_MARKER and args.file == STDIN_MARKER:
        raise ConfigError("stdin can only be read once: use '-' for the prompt or for --file, not both")
    prompt = args.prompt or ""
    if prompt == STDIN_MARKER:
        prompt = read_input(prompt, stdin)

    variables = _parse_json_arg("vars", args.vars)
    if variables is not None and not isinstance(variables, dict):
        raise ConfigError("--vars must be a JSON object")

    template = config.get_template(args.template) if args.template else None
    user_prompt, system = compose_prompt(
        prompt,
        stdin=read_input(args.file, stdin),
        template=template,
        system=resolved.system,
        suffix=args.suffix,
        language=args.language or config.language,
        variables=variables,
    )

    history: List[ConversationMessage] = []
    if args.conversation:
        try:
            history = parse_conversation(args.conversation)
        except ValidationError as e:
            raise ConfigError(f"--conversation is not a valid conversation: {e}") from e

    options = CompletionOptions(
        model=resolved.model,
        max_tokens=resolved.max_tokens,
        min_tokens=resolved.min_tokens,
        temperature=resolved.temperature,
        top_p=resolved.top_p,
        top_k=resolved.top_k,
        suffix=args.suffix,
        api_version=resolved.version,
        api_key=api_key,
        base_url=resolved.base_url,
    )
    messages = build_conversation(user_prompt, history, system)
    logger.info(f"Prepared {len(messages)} messages for {api} ({options.model or provider.default_model})")
    return provider, messages, options


def build_request(
    args: argparse.Namespace, config: FileConfig, stdin: TextIO = sys.stdin
) -> Request:
    """Resolve every option and build the provider request."""
    provider, messages, options = prepare(args, config, stdin)
    return provider.build_request(messages, options)


def format_conversation(messages: List[ConversationMessage]) -> str:
    """Conversation as a JSON array, accepted back by --conversation."""
    data = [m.model_dump(mode="json") for m in messages]
    return orjson.dumps(data, option=orjson.OPT_INDENT_2).decode() + "\n"


def format_request(request: Request) -> str:
    """Method, URL and JSON body of a request. Headers are left out (API keys)."""
    body = orjson.dumps(orjson.loads(request.body), option=orjson.OPT_INDENT_2).decode()
    return f"{request.method} {request.redacted_url}\n{body}\n"


async def run(
    request: Request,
    out: TextIO,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """Stream the completion to `out`. Returns the number of deltas written."""
    written = 0
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        async with aclosing(stream_deltas(request, client)) as deltas:
            async for delta in deltas:
                if delta.text:
                    out.write(delta.text)
                    out.flush()
                    written += 1
    out.write("\n")
    out.flush()
    return written


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else settings.log_level.upper())

    config_path = Path(args.config_file).expanduser() if args.config_file else settings.config_path
    if args.config:
        sys.stdout.write(f"{config_path}\n")
        return 0
    if args.dir:
        sys.stdout.write(f"{config_path.parent}\n")
        return 0

    try:
        config = load_config(config_path)
        provider, messages, options = prepare(args, config)
        if args.print_conversation:
            sys.stdout.write(format_conversation(messages))
        request = provider.build_request(messages, options)
        if args.dry_run:
            sys.stdout.write(format_request(request))
            return 0
        asyncio.run(run(request, sys.stdout, timeout=float(settings.provider_timeout)))
    except LLMStreamError as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"Could not read input: {e}")
        return 1
    except KeyboardInterrupt:
        return 130
    return 0
