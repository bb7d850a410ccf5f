"""CLI: извлечь запись из текста и напечатать её как JSON.

Примеры:
    python -m extractor "Alan Smith is 6 feet tall and has blond hair."
    python -m extractor --schema people --file story.txt
    echo "..." | python -m extractor --show-prompt
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from extractor.core.logging import setup_logging
from extractor.schemas import EXTRACTION_SCHEMAS, ReferenceExample
from extractor.services.builder import PromptBuilderService

logger = logging.getLogger("extractor.cli")


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="extractor",
        description="Extract a structured record from text with an OpenAI-compatible LLM",
    )
    parser.add_argument("text", nargs="?", help="Text to extract from (default: --file or stdin)")
    parser.add_argument("--file", type=Path, help="Read the text from a file (instead of the TEXT argument)")
    parser.add_argument(
        "--schema", default="person", choices=sorted(EXTRACTION_SCHEMAS),
        help="Extraction schema (default: person)",
    )
    parser.add_argument("--model", help="Model name (default: EXTRACTOR_DEFAULT_MODEL)")
    parser.add_argument(
        "--examples", type=Path,
        help="JSON file with reference examples: [{\"text\": ..., \"output\": {...}}, ...]",
    )
    parser.add_argument(
        "--show-prompt", action="store_true",
        help="Print the assembled messages and schema without calling the model",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    return parser


def _read_text(args: argparse.Namespace) -> str:
    if args.text:
        return args.text
    if args.file:
        return args.file.read_text(encoding="utf-8")
    return sys.stdin.read()


def _read_examples(path: Optional[Path]) -> List[ReferenceExample]:
    if path is None:
        return []
    raw = json.loads(path.read_text(encoding="utf-8"))
    return TypeAdapter(List[ReferenceExample]).validate_python(raw)


async def _extract(text: str, args: argparse.Namespace, examples: List[ReferenceExample]) -> int:
    # Imported here so --show-prompt works without provider credentials
    from extractor.services.llm_client import LLMError
    from extractor.services.pipeline import ExtractionPipeline

    try:
        res = await ExtractionPipeline().extract(text, args.schema, model=args.model, examples=examples)
    except LLMError as e:
        logger.error("extraction failed code=%s attempts=%s: %s", e.code, e.attempts, e)
        print(json.dumps(e.to_detail(), ensure_ascii=False), file=sys.stderr)
        return 1
    logger.info("model=%s attempts=%s usage=%s", res.model_uri, res.attempts, res.usage)
    print(res.record.model_dump_json(indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _parser()
    args = parser.parse_args(argv)
    if args.text and args.file:
        parser.error("give the text either as an argument or with --file, not both")
    setup_logging(level=args.log_level)

    try:
        text = _read_text(args)
        examples = _read_examples(args.examples)
        if args.show_prompt:
            prompt = PromptBuilderService().build(text=text, schema_name=args.schema, examples=examples)
            print(prompt.model_dump_json(by_alias=True, indent=2))
            return 0
    except (OSError, ValueError, ValidationError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_extract(text, args, examples))
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
