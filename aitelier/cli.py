"""
Command line front end.

Project state lives in a data directory:

    project.json    ProjectConfig
    examples.jsonl  one Example per line
    runs.json       run records
    evals/          evaluation summaries
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from aitelier.core.config import config
from aitelier.core.exceptions import AitelierError, DataValidationError, TransientPollError
from aitelier.core.logging_config import setup_logging
from aitelier.data.project import ProjectConfig
from aitelier.data.schema import Example, Split
from aitelier.data.splits import auto_split
from aitelier.data.stats import dataset_stats
from aitelier.data.store import JsonlExampleStore
from aitelier.training.evaluation import EvalResult, write_eval_summary
from aitelier.training.schema import Run
from aitelier.training.service import TrainingService
from aitelier.training.store import JsonRunStore

PROJECT_FILE = "project.json"
EXAMPLES_FILE = "examples.jsonl"
RUNS_FILE = "runs.json"
EVALS_DIR = "evals"

DEFAULT_AUTHOR = "cli"

# Preflight warnings shown before asking for confirmation.
MAX_DISPLAYED_WARNINGS = 3

PREVIEW_CHARS = 60


def _load_project(data_dir: Path) -> ProjectConfig:
    path = data_dir / PROJECT_FILE
    if not path.exists():
        raise SystemExit(f"Project not initialized: {path} not found.")
    return ProjectConfig(**json.loads(path.read_text(encoding="utf-8")))


def _example_store(data_dir: Path) -> JsonlExampleStore:
    return JsonlExampleStore(data_dir / EXAMPLES_FILE)


def _build_service(data_dir: Path) -> TrainingService:
    return TrainingService(
        example_store=_example_store(data_dir),
        run_store=JsonRunStore(data_dir / RUNS_FILE),
    )


def _confirm(prompt: str) -> bool:
    return input(f"{prompt} [y/N] ").strip().lower() in {"y", "yes"}


def _preview(text: str) -> str:
    text = " ".join(text.split())
    return text if len(text) <= PREVIEW_CHARS else text[: PREVIEW_CHARS - 3] + "..."


def _ratio(value: str) -> float:
    try:
        ratio = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ratio: {value}")
    if not 0.0 < ratio < 1.0:
        raise argparse.ArgumentTypeError("ratio must be between 0 and 1 (exclusive)")
    return ratio


def _rating(value: str) -> int:
    try:
        rating = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid rating: {value}")
    if not 1 <= rating <= 10:
        raise argparse.ArgumentTypeError("rating must be between 1 and 10")
    return rating


def _print_run(run: Run) -> None:
    print(f"Run ID: {run.id}")
    print(f"Provider: {run.provider} (job: {run.provider_job_id or 'n/a'})")
    print(f"Status: {run.status.value}")
    print(f"Started: {run.created_at.isoformat()}")
    if run.result_model_id:
        print(f"Model ID: {run.result_model_id}")
    if run.error:
        print(f"Error: {run.error}")


# ----------------------------------------------------------------------
# curation
# ----------------------------------------------------------------------


def cmd_add(args: argparse.Namespace) -> int:
    project = _load_project(args.data_dir)
    input_text = Path(args.input).read_text(encoding="utf-8").strip()
    output_text = Path(args.output).read_text(encoding="utf-8").strip()
    if not input_text:
        raise DataValidationError("Input content is empty")
    if not output_text:
        raise DataValidationError("Output content is empty")

    rating_fields = {}
    if args.rating is not None:
        rating_fields = {
            "rating": args.rating,
            "rated_by": args.by,
            "rated_at": datetime.now(timezone.utc),
        }
    example = _example_store(args.data_dir).add(
        Example(
            project_id=project.project_id,
            input=input_text,
            output=output_text,
            created_by=args.by,
            **rating_fields,
        )
    )
    print(f"Added example {example.id}")
    return 0


def cmd_rate(args: argparse.Namespace) -> int:
    if args.clear == (args.rating is not None):
        print("Error: give either a rating or --clear", file=sys.stderr)
        return 2
    example = _example_store(args.data_dir).rate(
        args.example_id, None if args.clear else args.rating, rated_by=args.by
    )
    rating = f"{example.rating}/10" if example.rating is not None else "unrated"
    print(f"Example {example.id}: {rating}")
    return 0


def _matches(example: Example, args: argparse.Namespace) -> bool:
    if args.rated and example.rating is None:
        return False
    if args.unrated and example.rating is not None:
        return False
    if args.min is not None and (example.rating is None or example.rating < args.min):
        return False
    if args.max is not None and (example.rating is None or example.rating > args.max):
        return False
    if args.split == "none":
        return example.split is None
    if args.split is not None:
        return example.split == Split(args.split)
    return True


def cmd_list(args: argparse.Namespace) -> int:
    project = _load_project(args.data_dir)
    examples = [
        e for e in _example_store(args.data_dir).list_examples(project.project_id) if _matches(e, args)
    ]

    if args.json:
        print(json.dumps([e.model_dump(mode="json") for e in examples], indent=2))
        return 0
    if not examples:
        print("No examples found.")
        return 0
    for e in examples:
        rating = f"{e.rating:>2}/10" if e.rating is not None else "  -  "
        split = e.split.value if e.split is not None else "-"
        print(f"{e.id}  {rating}  {split:<5}  {_preview(e.input)}")
    print(f"\n{len(examples)} example(s)")
    return 0


def cmd_remove(args: argparse.Namespace) -> int:
    _example_store(args.data_dir).delete(args.example_id)
    print(f"Removed example {args.example_id}")
    return 0


def cmd_split(args: argparse.Namespace) -> int:
    project = _load_project(args.data_dir)
    store = _example_store(args.data_dir)

    if args.reshuffle and not args.yes:
        val_count = len(store.list_val(project.project_id))
        if val_count and not _confirm(
            f"This will reshuffle all {val_count} validation examples. Are you sure?"
        ):
            print("Split cancelled.")
            return 1

    result = auto_split(
        store,
        project.project_id,
        project.quality_threshold,
        ratio=args.ratio,
        seed=args.seed,
        reshuffle=args.reshuffle,
    )
    locked = " (validation set locked)" if result.val_locked else ""
    print(f"Train: {result.train_count}  Val: {result.val_count}{locked}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    project = _load_project(args.data_dir)
    store = _example_store(args.data_dir)
    stats = dataset_stats(store.list_examples(project.project_id), project.quality_threshold)
    print(json.dumps(stats.model_dump(), indent=2))
    return 0


# ----------------------------------------------------------------------
# runs
# ----------------------------------------------------------------------


def cmd_preflight(args: argparse.Namespace) -> int:
    project = _load_project(args.data_dir)
    report = _build_service(args.data_dir).get_preflight_report(project)
    print(f"Train: {report.train_count}  Val: {report.val_count}  Quality: {report.quality_count}")
    print(f"Unassigned: {report.unassigned_count}")
    print(f"Estimated cost: ${report.estimated_cost_usd:.2f}  Duration: {report.estimated_duration}")
    for warning in report.warnings[:MAX_DISPLAYED_WARNINGS]:
        print(f"  ! {warning}")
    print("Ready" if report.is_ready else "Not ready")
    return 0


def cmd_train(args: argparse.Namespace) -> int:
    project = _load_project(args.data_dir)
    service = _build_service(args.data_dir)

    report = service.get_preflight_report(project)
    if report.warnings and not args.yes:
        for warning in report.warnings[:MAX_DISPLAYED_WARNINGS]:
            print(f"  ! {warning}")
        if not _confirm("Dataset is not ready. Start anyway?"):
            print("Aborted.")
            return 1

    result = service.start_training(project)
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    print(f"Run started: {result.run_id}")
    print("Monitor progress with: aitelier status")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    project = _load_project(args.data_dir)
    service = _build_service(args.data_dir)

    while True:
        runs = service.run_store.list_for_project(project.project_id)
        if not runs:
            print("No training runs found. Start one with: aitelier train")
            return 0

        selected = runs if args.all else runs[:1]
        for run in selected:
            try:
                run = service.reconcile_run(run.id)
            except TransientPollError as exc:
                print(f"Warning: {exc}", file=sys.stderr)
            _print_run(run)
            print()

        if not args.watch or all(service.get_run_status(r.id).is_terminal for r in selected):
            return 0
        time.sleep(args.interval)


def cmd_cancel(args: argparse.Namespace) -> int:
    run = _build_service(args.data_dir).cancel_run(args.run_id)
    _print_run(run)
    return 0


def _prompt_score(result: EvalResult) -> Optional[int]:
    print(f"\nInput:\n{result.input}")
    print(f"\nExpected:\n{result.expected_output}")
    if result.base_output is not None:
        print(f"\nBase model:\n{result.base_output}")
    print(f"\nFine-tuned model:\n{result.actual_output}\n")
    while True:
        answer = input("Score 1-5 (Enter to skip): ").strip()
        if not answer:
            return None
        if answer.isdigit() and 1 <= int(answer) <= 5:
            return int(answer)
        print("Please enter a whole number between 1 and 5.")


def cmd_eval(args: argparse.Namespace) -> int:
    project = _load_project(args.data_dir)
    service = _build_service(args.data_dir)

    run = (
        service.get_run_status(args.run_id)
        if args.run_id
        else service.latest_completed_run(project.project_id)
    )
    if run is None:
        print("No completed runs found. Start one with: aitelier train")
        return 0
    val = service.example_store.list_val(project.project_id)
    if not val:
        print("No validation examples. Create them with: aitelier split")
        return 0

    summary = service.evaluate_run(
        run.id,
        val,
        system_prompt=project.system_prompt,
        compare=args.compare,
        scorer=None if args.no_score else _prompt_score,
    )
    print(f"Model: {summary.model_id}")
    print(f"Examples: {summary.total_examples}  Scored: {summary.scored}  Skipped: {summary.skipped}")
    if summary.average_score is not None:
        print(f"Average score: {summary.average_score:.2f}/5  Sendable: {summary.sendable_rate:.1f}%")
    path = write_eval_summary(summary, args.data_dir / EVALS_DIR)
    print(f"Results saved to: {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="aitelier", description="Fine-tuning run manager")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=config.data_dir,
        help="Directory holding project.json, examples.jsonl and runs.json",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add an input/output example from two files")
    add.add_argument("-i", "--input", required=True, help="File holding the input text")
    add.add_argument("-o", "--output", required=True, help="File holding the output text")
    add.add_argument("--rating", type=_rating, default=None, help="Rate the example (1-10)")
    add.add_argument("--by", default=DEFAULT_AUTHOR, help="Author and rater name")
    add.set_defaults(func=cmd_add)

    rate = sub.add_parser("rate", help="Rate an example or clear its rating")
    rate.add_argument("example_id")
    rate.add_argument("rating", nargs="?", type=_rating, default=None, help="Rating (1-10)")
    rate.add_argument("--clear", action="store_true", help="Remove the rating")
    rate.add_argument("--by", default=DEFAULT_AUTHOR, help="Rater name")
    rate.set_defaults(func=cmd_rate)

    lst = sub.add_parser("list", help="List examples")
    rated = lst.add_mutually_exclusive_group()
    rated.add_argument("--rated", action="store_true", help="Only rated examples")
    rated.add_argument("--unrated", action="store_true", help="Only unrated examples")
    lst.add_argument("--min", type=_rating, default=None, help="Minimum rating")
    lst.add_argument("--max", type=_rating, default=None, help="Maximum rating")
    lst.add_argument("--split", choices=["train", "val", "none"], default=None)
    lst.add_argument("--json", action="store_true", help="Print JSON")
    lst.set_defaults(func=cmd_list)

    remove = sub.add_parser("remove", help="Delete an example")
    remove.add_argument("example_id")
    remove.set_defaults(func=cmd_remove)

    split = sub.add_parser("split", help="Assign quality examples to train/val")
    split.add_argument("--ratio", type=_ratio, default=0.8, help="Train fraction per rating group")
    split.add_argument("--seed", type=int, default=None, help="Shuffle seed")
    split.add_argument("--reshuffle", action="store_true", help="Clear every split and re-split")
    split.add_argument("--yes", action="store_true", help="Skip reshuffle confirmation")
    split.set_defaults(func=cmd_split)

    sub.add_parser("stats", help="Show dataset health overview").set_defaults(func=cmd_stats)

    sub.add_parser("preflight", help="Show dataset readiness").set_defaults(func=cmd_preflight)

    train = sub.add_parser("train", help="Start a fine-tuning run")
    train.add_argument("--yes", action="store_true", help="Skip readiness confirmation")
    train.set_defaults(func=cmd_train)

    status = sub.add_parser("status", help="Refresh and show run status")
    status.add_argument("--all", action="store_true", help="Show all runs")
    status.add_argument("--watch", action="store_true", help="Poll until the runs finish")
    status.add_argument("--interval", type=float, default=30.0, help="Seconds between polls")
    status.set_defaults(func=cmd_status)

    cancel = sub.add_parser("cancel", help="Cancel a run")
    cancel.add_argument("run_id")
    cancel.set_defaults(func=cmd_cancel)

    evaluate = sub.add_parser("eval", help="Evaluate a fine-tuned model on the validation split")
    evaluate.add_argument("--run-id", default=None, help="Run to evaluate (default: latest completed)")
    evaluate.add_argument("--compare", action="store_true", help="Also show base model output")
    evaluate.add_argument("--no-score", action="store_true", help="Record outputs without scoring")
    evaluate.set_defaults(func=cmd_eval)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    logger = setup_logging(level="DEBUG" if args.verbose else None)
    try:
        return args.func(args)
    except AitelierError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
