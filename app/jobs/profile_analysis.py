"""Command-line entrypoint: analyze one GitHub profile and write the bundle as JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from app.errors import PipelineError
from app.models.request import ProfileRequest
from app.pipeline import run_analysis

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m app.jobs.profile_analysis",
        description="Analyze a GitHub profile and emit its portfolio bundle as JSON.",
    )
    parser.add_argument("username", help="GitHub username to analyze")
    parser.add_argument("--language", help="output language for generated text")
    parser.add_argument("--model", help="LLM model name")
    parser.add_argument("--api-url", help="LLM endpoint (OpenAI-compatible or Ollama)")
    parser.add_argument("--api-key", help="LLM API key")
    parser.add_argument("--github-token", help="GitHub token for higher rate limits")
    parser.add_argument("--output", "-o", type=Path, help="write JSON here instead of stdout")
    return parser


async def run_profile_analysis(args: argparse.Namespace, **deps: Any) -> dict[str, Any]:
    request = ProfileRequest.from_settings(
        args.username,
        github_token=args.github_token,
        llm_api_url=args.api_url,
        llm_api_key=args.api_key,
        model_name=args.model,
        output_language=args.language,
    )
    bundle = await run_analysis(request, **deps)
    return bundle.to_dict()


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )
    args = build_parser().parse_args(argv)

    try:
        result = asyncio.run(run_profile_analysis(args))
    except PipelineError as exc:
        logger.error(f"Analysis failed: {exc.kind}: {exc.message}")
        print(json.dumps(exc.to_dict(), ensure_ascii=False), file=sys.stderr)
        return 1

    rendered = json.dumps(result, ensure_ascii=False, indent=2)
    if args.output:
        args.output.write_text(rendered + "\n", encoding="utf-8")
        logger.info(f"Bundle written to {args.output}")
    else:
        print(rendered)
    return 0


if __name__ == "__main__":
    sys.exit(main())
