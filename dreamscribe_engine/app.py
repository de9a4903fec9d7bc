import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from .analysis.report import summarize_runs
from .catalog import ProviderCatalog
from .config import EngineConfig, load_api_keys
from .costs import estimate_generation_cost, tokens_for
from .domain import ComparisonError, FeedbackRequest, GenerationRequest, StoryMetadata, Success, describe_failure
from .runner.comparison import ComparisonRunner
from .runner.orchestrator import GenerationOrchestrator
from .runner.progress import ComparisonProgressTracker
from .storage.repository import ComparisonHistory, JsonlStorage


logger = logging.getLogger("dreamscribe_engine")


def parse_selection(values: List[str]) -> List[Tuple[str, Optional[str]]]:
    """`provider` or `provider:model` -> (provider, model or None)."""
    out: List[Tuple[str, Optional[str]]] = []
    for value in values:
        provider_id, _, model = value.partition(":")
        out.append((provider_id.strip(), model.strip() or None))
    return out


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dreamscribe")
    parser.add_argument("command", choices=["providers", "estimate", "generate", "feedback", "compare", "history"])
    parser.add_argument("--data_dir", default="data")
    parser.add_argument("--run_id", default="")
    parser.add_argument("--limit", type=int, default=0)
    parser.add_argument("--log_level", default="INFO")
    parser.add_argument("--log_file", default="")
    parser.add_argument("--keys_file", default="")
    parser.add_argument("--provider", default="openai")
    parser.add_argument("--model", default="")
    parser.add_argument("--select", action="append", default=[], help="provider[:model], repeat 2-3 times")
    parser.add_argument("--prompt", default="")
    parser.add_argument("--prompt_file", default="")
    parser.add_argument("--summary", default="")
    parser.add_argument("--title", default="Untitled story")
    parser.add_argument("--genre", default="Fantasy")
    parser.add_argument("--tone", default="Whimsical")
    parser.add_argument("--perspective", default="Third person")
    parser.add_argument("--length", default="medium", choices=["short", "medium", "long"])
    parser.add_argument("--tokens", type=int, default=0)
    parser.add_argument("--temperature", type=float, default=None)
    parser.add_argument("--draft_file", default="")
    parser.add_argument("--instruction", default="")
    parser.add_argument("--focus", default="custom", choices=["grammar", "dialogue", "flow", "custom"])
    return parser


def configure_logging(level_name: str, log_file: str = "") -> None:
    log_level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(level=log_level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_path))
        fh.setLevel(log_level)
        fh.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
        logging.getLogger().addHandler(fh)


def _metadata(args: argparse.Namespace) -> StoryMetadata:
    return StoryMetadata(
        title=args.title,
        genre=args.genre,
        tone=args.tone,
        perspective=args.perspective,
        target_length=args.length,
        target_tokens=args.tokens or None,
    )


def _prompt(args: argparse.Namespace) -> str:
    if args.prompt_file:
        return Path(args.prompt_file).read_text(encoding="utf-8")
    return args.prompt


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    logger.info("command=%s data_dir=%s", args.command, args.data_dir)
    catalog = ProviderCatalog()

    if args.command == "providers":
        for p in catalog:
            print(f"{p.id}\t{p.label}\tdefault={p.default_model}\tmodels={','.join(p.models)}\t{p.docs_url}")
        return 0

    metadata = _metadata(args)
    if args.command == "estimate":
        tokens = tokens_for(metadata)
        print(json.dumps({"provider": args.provider, "tokens": tokens, "cost": estimate_generation_cost(args.provider, tokens)}))
        return 0

    history = ComparisonHistory(JsonlStorage(args.data_dir))
    if args.command == "history":
        if args.run_id:
            try:
                print(json.dumps(history.get(args.run_id), ensure_ascii=False, indent=2))
            except KeyError:
                logger.error("no stored comparison run %s", args.run_id)
                return 1
            return 0
        runs = history.runs(args.limit or None)
        print(summarize_runs(runs).to_string(index=False))
        return 0

    config = EngineConfig.from_env()
    keys = load_api_keys(args.keys_file or None)
    orchestrator = GenerationOrchestrator(config=config)

    if args.command in ("generate", "feedback"):
        provider = catalog.get(args.provider)
        if provider is None:
            logger.error("unknown provider %s", args.provider)
            return 2
        model = catalog.resolve_model(provider.id, args.model or None)
        if args.command == "generate":
            result = orchestrator.generate_story(GenerationRequest(
                provider=provider,
                api_key=keys.get(provider.id, ""),
                metadata=metadata,
                prompt=_prompt(args),
                temperature=args.temperature,
                model=model,
                max_output_tokens=tokens_for(metadata),
            ))
        else:
            if not args.draft_file:
                logger.error("feedback command requires --draft_file")
                return 2
            result = orchestrator.request_feedback(FeedbackRequest(
                provider=provider,
                api_key=keys.get(provider.id, ""),
                metadata=metadata,
                draft=Path(args.draft_file).read_text(encoding="utf-8"),
                instruction=args.instruction,
                focus=args.focus,
                model=model,
            ))
        if isinstance(result, Success):
            print(result.content)
            return 0
        logger.error("%s", describe_failure(result))
        return 1

    # compare
    runner = ComparisonRunner(orchestrator, catalog)
    try:
        run, requests = runner.prepare(
            _prompt(args),
            parse_selection(args.select),
            keys,
            metadata,
            summary=args.summary or None,
        )
    except ComparisonError as e:
        logger.error("%s", e)
        return 2
    for v in run.variants:
        logger.info("projected_cost provider=%s model=%s cost=%.3f", v.provider_id, v.model, v.cost_estimate)
    tracker = ComparisonProgressTracker(args.data_dir, run.id)
    tracker.record(run.snapshot())
    runner.start(run, requests, listeners=[tracker.on_event])
    run.wait()
    snapshot = run.snapshot()
    tracker.record(snapshot)
    history.record(snapshot)
    print(json.dumps(snapshot, ensure_ascii=False, indent=2))
    return 0 if run.successes() else 1


if __name__ == "__main__":
    raise SystemExit(main())
