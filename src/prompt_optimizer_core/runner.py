"""
prompt-optimizer-core CLI Runner

Minimal CLI for optimizing extraction prompts from an accuracy snapshot.

Usage:
    python -m prompt_optimizer_core.runner --snapshot snapshot.json --documents-dir docs/
    python -m prompt_optimizer_core.runner --snapshot snapshot.json --documents-dir docs/ --test-model gemini-2.5-flash

Save improved prompts to the prompt history:
    python -m prompt_optimizer_core.runner --snapshot snapshot.json --documents-dir docs/ --apply
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict, replace
from functools import partial
from pathlib import Path

from dotenv import load_dotenv

from prompt_optimizer_core.domain.entities import AccuracySnapshot, FieldResult, RunSummary
from prompt_optimizer_core.errors import InputValidationError
from prompt_optimizer_core.infrastructure.adapters import (
    DirectoryDocumentStore,
    InMemoryPlaceholderProvider,
    JsonPromptHistoryStore,
    ModelClientExtractionService,
    ModelClientGenerationService,
)
from prompt_optimizer_core.infrastructure.model_clients.factory import create_client
from prompt_optimizer_core.optimizer_config import load_config
from prompt_optimizer_core.use_cases.health_check import required_models, run_health_check
from prompt_optimizer_core.use_cases.optimization import (
    OptimizerServices,
    apply_results,
    run_optimization,
    summary_to_dataframe,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="prompt-optimizer-core: Improve extraction prompts for failing fields",
    )
    parser.add_argument(
        "--snapshot",
        required=True,
        help="Path to the accuracy snapshot JSON file",
    )
    parser.add_argument(
        "--test-model",
        default=None,
        help="Model whose extractions are being improved (default: OPTIMIZER_TEST_MODEL)",
    )
    parser.add_argument(
        "--max-docs",
        type=int,
        default=None,
        help="Maximum documents to sample (default: OPTIMIZER_MAX_DOCS)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum iterations per field (default: OPTIMIZER_MAX_ITERATIONS)",
    )
    parser.add_argument(
        "--documents-dir",
        default="documents",
        help="Directory holding <document_id>.txt files (default: documents)",
    )
    parser.add_argument(
        "--history-file",
        default="prompt_history.json",
        help="Prompt history JSON file (default: prompt_history.json)",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Save improved prompts to the prompt history",
    )
    parser.add_argument(
        "--skip-health-check",
        action="store_true",
        help="Skip the model connectivity check",
    )
    parser.add_argument(
        "--output-dir",
        default="results",
        help="Directory for output files (default: results)",
    )
    return parser.parse_args(argv)


def load_snapshot(path: str | Path) -> AccuracySnapshot:
    """Load an accuracy snapshot from JSON"""
    with open(path, encoding="utf-8") as f:
        return AccuracySnapshot.from_dict(json.load(f))


def _print_field_result(result: FieldResult) -> None:
    holdout = f" | holdout {result.holdout_accuracy:.2f}" if result.holdout_accuracy is not None else ""
    print(
        f"  {result.field_name:<30} {result.status.value:<10} "
        f"{result.initial_accuracy:>5.2f} -> {result.final_accuracy:>5.2f} "
        f"({result.iteration_count} iter){holdout}"
    )
    if result.error:
        print(f"    Error: {result.error[:100]}")


def write_outputs(summary: RunSummary, output_dir: Path) -> tuple[Path, Path]:
    """Write the per-field CSV and the full JSON summary"""
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_path = output_dir / f"summary_{summary.run_id}.csv"
    json_path = output_dir / f"run_{summary.run_id}.json"

    summary_to_dataframe(summary).to_csv(csv_path, index=False)
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(asdict(summary), f, ensure_ascii=False, indent=2, default=str)
    return csv_path, json_path


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Load config
    config = load_config()
    if args.max_docs is not None:
        config = replace(config, sampling=replace(config.sampling, max_docs=args.max_docs))
    if args.max_iterations is not None:
        config = replace(config, iteration=replace(config.iteration, max_iterations=args.max_iterations))
    make_client = partial(create_client, config=config)
    test_model = args.test_model or config.models.default_test_model

    print(f"\n=== Loading snapshot: {args.snapshot} ===\n")
    snapshot = load_snapshot(args.snapshot)
    print(f"  Template: {snapshot.template_key}")
    print(f"  Fields: {len(snapshot.fields)}")
    print(f"  Documents: {len(snapshot.documents)}")
    print(f"  Test model: {test_model}")
    print()

    # Step 1: Health check
    if not args.skip_health_check:
        models = required_models(config, test_model)
        available_models, _ = run_health_check(models, make_client)
        if len(available_models) < len(models):
            print("ERROR: Required models are unavailable. Exiting.")
            sys.exit(1)

    # Step 2: Optimize
    document_store = DirectoryDocumentStore(args.documents_dir)
    history_store = JsonPromptHistoryStore(args.history_file)
    services = OptimizerServices(
        extraction_service=ModelClientExtractionService(
            make_client, document_store, system_prompt=config.prompts.system_prompt_override,
        ),
        generation_service=ModelClientGenerationService(make_client, document_store),
        placeholder_provider=InMemoryPlaceholderProvider(document_store),
        prompt_history_store=history_store,
    )

    print("=== Optimizing ===\n")
    try:
        summary = run_optimization(
            snapshot,
            services,
            config,
            test_model=test_model,
            on_field_complete=lambda r: print(f"  done: {r.field_name} ({r.status.value})"),
        )
    except InputValidationError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    # Step 3: Report
    print(f"\n=== Results (run {summary.run_id}) ===\n")
    if not summary.results:
        print("  All fields meet the target accuracy. Nothing to do.")
    for result in summary.results:
        _print_field_result(result)
    if summary.uncovered_field_keys:
        print(f"\n  WARNING: no sampled document for: {', '.join(summary.uncovered_field_keys)}")
    print(f"\n  Documents: {', '.join(summary.sampled_document_names.values()) or '-'}")
    print(f"  Time: {summary.actual_seconds:.1f}s (estimated {summary.estimated_seconds:.0f}s)")

    csv_path, json_path = write_outputs(summary, Path(args.output_dir))
    print(f"\n  Summary: {csv_path}")
    print(f"  Details: {json_path}")

    # Step 4: Apply
    if args.apply:
        saved = apply_results(summary, history_store)
        print(f"\n=== Applied {len(saved)} improved prompt(s) to {args.history_file} ===")
    print()


if __name__ == "__main__":
    main()
