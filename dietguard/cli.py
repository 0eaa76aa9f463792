#!/usr/bin/env python3
"""Command-line interface for diet rule derivation and guardrails evaluation.

Exit codes:
    0  rule set printed, or plan allowed/warned
    1  error (missing file, invalid input, rules could not be loaded)
    2  plan blocked
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from dietguard.actions.guardrails_service import GuardrailsService
from dietguard.config import GuardrailsSettings, configure_logging
from dietguard.data_layer.exceptions import GuardrailsError
from dietguard.data_layer.models import DietKey
from dietguard.data_layer.plan_snapshot import parse_meal_plan
from dietguard.data_layer.profile_loader import DietProfileLoader
from dietguard.loaders.cache import OverrideCache, SynonymCache
from dietguard.loaders.household_loader import HouseholdRuleLoader
from dietguard.loaders.ruleset_loader import GuardrailsRulesetLoader
from dietguard.loaders.store import JsonRuleStore
from dietguard.output.formatters import (
    format_outcome_json,
    format_outcome_markdown,
    format_rule_set_json,
    format_rule_set_markdown,
    to_json_string,
)
from dietguard.rules.derivation import derive_diet_rule_set


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_BLOCKED = 2

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dietguard",
        description="Derive diet rule sets and evaluate meal plans against diet guardrails",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Optional settings YAML file (top-level 'guardrails' mapping)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        help="Logging level (default: from settings, WARNING)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    derive = subparsers.add_parser("derive", help="Print the rule set derived from a diet profile")
    derive.add_argument(
        "--profile",
        type=str,
        default="config/diet_profile.yaml",
        help="Path to diet profile YAML file (default: config/diet_profile.yaml)"
    )
    _add_output_arguments(derive)

    evaluate = subparsers.add_parser("evaluate", help="Evaluate a meal plan snapshot")
    evaluate.add_argument("--plan", type=str, required=True, help="Path to meal plan snapshot JSON")
    evaluate.add_argument(
        "--profile",
        type=str,
        help="Optional diet profile YAML; its derived rules are added to the table rules"
    )
    evaluate.add_argument("--data-dir", type=str, help="Rule table directory (default: from settings)")
    evaluate.add_argument("--diet", type=str, help="Diet key (default: profile, then plan, then balanced)")
    evaluate.add_argument("--household", type=str, help="Household id whose avoid rules apply")
    evaluate.add_argument(
        "--mode",
        choices=["meal_planner", "plan_chat", "recipe_adaptation"],
        help="Evaluation mode (default: from settings)"
    )
    _add_output_arguments(evaluate)
    return parser


def _add_output_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        type=str,
        choices=["markdown", "json"],
        default="markdown",
        help="Output format: markdown (default) or json"
    )
    parser.add_argument(
        "--output-file",
        type=str,
        help="Optional file path to save output (default: print to stdout)"
    )


def load_settings(args: argparse.Namespace) -> GuardrailsSettings:
    settings = GuardrailsSettings.from_yaml(args.config) if args.config else GuardrailsSettings()
    if args.log_level:
        settings.log_level = args.log_level
    return settings


def build_service(settings: GuardrailsSettings) -> GuardrailsService:
    """Wire the JSON rule store, caches and loaders into a GuardrailsService."""
    store = JsonRuleStore(settings.data_dir)
    return GuardrailsService(
        ruleset_loader=GuardrailsRulesetLoader(store),
        override_cache=OverrideCache(store),
        household_loader=HouseholdRuleLoader(store, priority=settings.household_rule_priority),
        synonym_cache=SynonymCache(store),
        settings=settings,
    )


def _emit(text: str, output_file: Optional[str]) -> None:
    if output_file:
        Path(output_file).write_text(text)
        print(f"Output saved to {output_file}", file=sys.stderr)
    else:
        print(text)


def run_derive(args: argparse.Namespace) -> int:
    profile_path = Path(args.profile)
    if not profile_path.exists():
        print(f"Error: Diet profile file not found: {profile_path}", file=sys.stderr)
        return EXIT_ERROR

    profile = DietProfileLoader(str(profile_path)).load()
    rule_set = derive_diet_rule_set(profile)
    if args.output == "json":
        _emit(to_json_string(format_rule_set_json(rule_set)), args.output_file)
    else:
        _emit(format_rule_set_markdown(rule_set), args.output_file)
    return EXIT_OK


def run_evaluate(args: argparse.Namespace, settings: GuardrailsSettings) -> int:
    plan_path = Path(args.plan)
    if not plan_path.exists():
        print(f"Error: Meal plan file not found: {plan_path}", file=sys.stderr)
        return EXIT_ERROR
    if args.data_dir:
        settings.data_dir = args.data_dir

    profile = None
    if args.profile:
        profile_path = Path(args.profile)
        if not profile_path.exists():
            print(f"Error: Diet profile file not found: {profile_path}", file=sys.stderr)
            return EXIT_ERROR
        profile = DietProfileLoader(str(profile_path)).load()

    with open(plan_path, "r") as f:
        plan = parse_meal_plan(json.load(f))

    diet_key = args.diet or (profile.diet_key if profile else None) or plan.diet_key or DietKey.BALANCED.value
    print(f"Evaluating plan for diet '{diet_key}' with rules from {settings.data_dir}...", file=sys.stderr)

    evaluation = build_service(settings).evaluate_plan(
        plan,
        diet_key,
        mode=args.mode,
        household_id=args.household,
        profile=profile,
    )
    outcome = evaluation.outcome
    if args.output == "json":
        _emit(to_json_string(format_outcome_json(outcome)), args.output_file)
    else:
        _emit(format_outcome_markdown(outcome), args.output_file)

    print(f"\n{outcome.summary}", file=sys.stderr)
    return EXIT_BLOCKED if outcome.is_blocked else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args)
        configure_logging(settings.log_level)
        if args.command == "derive":
            return run_derive(args)
        return run_evaluate(args, settings)
    except GuardrailsError as e:
        logger.debug(f"Guardrails error context: {e.context}")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except (OSError, ValueError, KeyError, yaml.YAMLError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
