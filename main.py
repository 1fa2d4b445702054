"""Entrypoint: run a single completion or inspect provider routing."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from llm_gateway.config import load_settings, parse_route
from llm_gateway.llm.router import VALIDATION_RETRY_LIMIT, LLMRouter
from llm_gateway.llm.types import CompletionRequest, LLMError, ResponseFormat, suggested_http_status


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reliable LLM completions with provider fallback")
    parser.add_argument("--settings", default="config/settings.yaml", help="Path to settings.yaml")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level")

    subparsers = parser.add_subparsers(dest="command")

    complete = subparsers.add_parser("complete", help="Run one completion and print the result as JSON")
    source = complete.add_mutually_exclusive_group(required=True)
    source.add_argument("--prompt", help="Prompt text")
    source.add_argument("--prompt-file", help="Read the prompt from a file")
    complete.add_argument("--system", help="System prompt")
    complete.add_argument("--json", action="store_true", help="Request (and repair) a JSON response")
    complete.add_argument("--max-tokens", type=int)
    complete.add_argument("--temperature", type=float)
    complete.add_argument("--route", help="Primary 'provider:model' override, e.g. openai:gpt-4o")

    subparsers.add_parser("providers", help="Show the resolved provider order")
    return parser


def _apply_route(config: dict, route: str) -> None:
    provider, model = parse_route(route)
    config.setdefault("llm", {})["primary_provider"] = provider
    config.setdefault("providers", {}).setdefault(provider, {})["model"] = model


def _read_prompt(args: argparse.Namespace) -> str:
    if args.prompt_file:
        return Path(args.prompt_file).read_text(encoding="utf-8")
    return args.prompt


def main() -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_settings(args.settings)

    if args.command == "providers":
        router = LLMRouter(config)
        print(f"Provider order  = {', '.join(router.provider_order()) or '(none)'}")
        print(f"Timeout (ms)    = {router.timeout_ms}")
        print(f"Max retries     = {router.max_retries}")
        print(f"JSON retries    = {VALIDATION_RETRY_LIMIT}")
        for name in router.provider_order():
            print(f"- {name}: {getattr(router.providers[name], 'model', '?')}")
        return

    if args.route:
        _apply_route(config, args.route)

    router = LLMRouter(config)
    request = CompletionRequest(
        prompt=_read_prompt(args),
        system_prompt=args.system,
        max_tokens=args.max_tokens,
        temperature=args.temperature,
        response_format=ResponseFormat.JSON if args.json else ResponseFormat.TEXT,
    )
    try:
        result = router.complete(request)
    except LLMError as exc:
        print(
            f"Completion failed: {exc.code.value} from {exc.provider_name} "
            f"(http {suggested_http_status(exc)}): {exc.message}",
            file=sys.stderr,
        )
        sys.exit(1)

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
