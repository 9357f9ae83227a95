#!/usr/bin/env python3
"""
RepCoach
Command-line entry point: plan the next workout and review training history.
"""

import argparse
import json
import logging
import os
import sys

import anthropic
from dotenv import load_dotenv

from repcoach.analytics import aggregate_exercise, aggregate_group, compute_summary
from repcoach.config import ConfigError, load_config, planner_settings
from repcoach.exercise_pool import load_catalog
from repcoach.history_store import find_exercise, get_workout_by_id, load_workouts
from repcoach.llm_planner import LLMPlanner, PlannerError
from repcoach.plan_generator import generate_plan
from repcoach.plan_validator import validate_plan
from repcoach.progression_rules import format_load


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Plan workouts and analyze training history.")
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml.")
    parser.add_argument("--history", default=None, help="Workout history JSON (overrides config).")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Generate the next workout plan.")
    plan.add_argument("--goals", choices=["hypertrophy", "strength", "endurance"], default=None)
    plan.add_argument("--split", choices=["full", "upper", "lower", "push", "pull", "legs"], default=None)
    plan.add_argument("--time", type=int, default=None, help="Time budget in minutes.")
    plan.add_argument("--seed", type=int, default=None, help="Seed for reproducible plans.")
    plan.add_argument("--readiness", type=float, default=None, help="Readiness from 0 to 1.")
    plan.add_argument("--avoid", action="append", default=[], help="Muscle group to avoid.")
    plan.add_argument("--target", action="append", default=[], help="Muscle group to target.")
    plan.add_argument("--injury", action="append", default=[], help="Injury tag, e.g. lower_back.")
    plan.add_argument("--llm", action="store_true", help="Plan with Claude instead of the heuristic engine.")
    plan.add_argument("--json", action="store_true", help="Print the plan as JSON.")

    group = sub.add_parser("group", help="Muscle group insights.")
    group.add_argument("group")
    group.add_argument("--range", type=int, default=90, help="Trailing window in days.")
    group.add_argument("--json", action="store_true")

    exercise = sub.add_parser("exercise", help="Exercise progression.")
    exercise.add_argument("exercise", help="Exercise id or name.")
    exercise.add_argument("--json", action="store_true")

    summary = sub.add_parser("summary", help="Per-session summaries.")
    summary.add_argument("workout_id", nargs="?", default=None)

    return parser.parse_args(argv)


def print_section(title):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def print_plan(plan, validation=None):
    units = plan["units"]
    print_section(plan["name"].upper())
    for index, block in enumerate(plan["blocks"], start=1):
        exercise = block["exercise"]
        print(f"\n{index}. {exercise['name']} ({exercise['muscleGroup']}, {exercise['equipment']})")
        for set_index, entry in enumerate(block["sets"], start=1):
            print(f"   Set {set_index}: {format_load(entry['weight'])} {units} x {format_load(entry['reps'])}")
        if block.get("notes"):
            print(f"   Notes: {block['notes']}")

    justification = plan.get("meta", {}).get("justification")
    if justification:
        print_section("WHY THIS PLAN")
        print(justification)
    if validation:
        print("\n" + validation["summary"])
        for violation in validation["violations"]:
            print(f"  ⚠ {violation['message']}")


def run_plan(args, config, history):
    planner = config["planner"]
    prefs = {
        "goals": args.goals or planner["goals"],
        "split": args.split or planner["split"],
        "timeBudgetMin": args.time if args.time is not None else planner["time_budget_min"],
        "equipment": planner["equipment"],
        "units": planner.get("units"),
    }
    constraints = {
        "avoidMuscles": args.avoid,
        "targetMuscles": args.target,
        "injuries": args.injury,
    }
    vitals = {}
    if args.readiness is not None:
        vitals["readiness"] = args.readiness

    if args.llm:
        api_key_env = config["claude"]["api_key_env"]
        api_key = os.getenv(api_key_env)
        if not api_key:
            print(f"\n❌ Error: {api_key_env} not found in environment variables!")
            print("Add your Anthropic API key to .env or the environment.")
            return 1
        print("Requesting plan from Claude...")
        try:
            plan, validation = LLMPlanner(api_key, config).generate_plan(
                history, prefs=prefs, vitals=vitals, constraints=constraints
            )
        except (PlannerError, anthropic.APIError) as exc:
            print(f"\n❌ Failed to generate workout plan: {exc}")
            return 1
    else:
        plan = generate_plan(
            history=history,
            goals=prefs["goals"],
            split=prefs["split"],
            time_budget_min=prefs["timeBudgetMin"],
            equipment=prefs["equipment"],
            catalog=load_catalog(config["catalog"].get("path")),
            constraints=constraints,
            vitals=vitals,
            settings=planner_settings(config),
            seed=args.seed,
        )
        validation = validate_plan(plan, constraints, plan["meta"]["setBudget"], prefs["equipment"])

    if args.json:
        print(json.dumps(plan, indent=2, default=str))
    else:
        print_plan(plan, validation)
    return 0


def run_group(args, history):
    result = aggregate_group(history, args.group, args.range)
    if args.json:
        print(json.dumps(result, indent=2, default=str))
        return 0

    print_section(f"{result['group'].upper()} - LAST {args.range} DAYS")
    print(f"Total volume: {format_load(result['totalVolume'])}")
    print(f"Workouts: {result['workoutsCount']} ({result['avgPerWeek']:.1f}/week)")
    if result["deltaPct"] is not None:
        print(f"Change vs previous period: {result['deltaPct']:+.1f}%")
    print(f"PRs this period: {result['prs']}")
    for item in result["topExercises"][:5]:
        best = item["bestSet"]
        print(
            f"  - {item['exercise']['name']}: {format_load(item['volume'])} volume, "
            f"best {format_load(best['weight'])} x {format_load(best['reps'])}"
        )
    if result["balance"]:
        print(f"Balance: {result['balance']['message']}")
    print(f"Trend: {result['e1rmTrend']['message'] or 'not enough sessions yet.'}")
    print(f"Load: {result['acwr']['message']}")
    for tip in result["noteTips"]:
        print(f"Tip: {tip}")
    return 0


def run_exercise(args, history):
    exercise = find_exercise(history, args.exercise) or args.exercise
    result = aggregate_exercise(history, exercise)
    if args.json:
        print(json.dumps(result, indent=2, default=str))
        return 0

    print_section(f"{args.exercise.upper()} PROGRESSION")
    if not result["sessions"]:
        print("No logged sets for this exercise.")
        return 0
    for session in result["sessions"]:
        print(
            f"  {session['id']}: volume {format_load(session['vol'])}, "
            f"top {format_load(session['maxW'])}, e1RM {session['maxE1']:.1f}"
        )
    print(f"Trend: {result['e1rmTrend']['message'] or 'not enough sessions yet.'}")
    if result["plateau"]:
        print(f"Plateau: {result['plateau']['message']}")
    print(f"Load: {result['acwr']['message']}")
    for tip in result["noteTips"]:
        print(f"Tip: {tip}")
    return 0


def run_summary(args, history):
    workouts = history
    if args.workout_id:
        workout = get_workout_by_id(history, args.workout_id)
        if workout is None:
            print(f"No workout with id {args.workout_id}")
            return 1
        workouts = [workout]

    for workout in workouts:
        summary = compute_summary(workout)
        print(
            f"{summary['date']}  {summary['exercises']} exercises, {summary['totalSets']} sets, "
            f"{format_load(summary['totalVolume'])} volume, {summary['durationMin']} min"
        )
    return 0


def main(argv=None):
    """Main application flow."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Load environment variables
    load_dotenv()

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"Error: {exc}")
        return 1

    history = load_workouts(args.history or config["history"]["path"])

    if args.command == "plan":
        return run_plan(args, config, history)
    if args.command == "group":
        return run_group(args, history)
    if args.command == "exercise":
        return run_exercise(args, history)
    return run_summary(args, history)


if __name__ == "__main__":
    sys.exit(main())
