"""
Workout plan generation through the Claude API.

The model only has to return plan-shaped JSON; everything it returns goes
through normalize_plan and validate_plan before the caller sees it.
"""

import json
import logging
import re

import anthropic

from repcoach.generation_context import build_planner_context
from repcoach.plan_generator import compute_set_budget
from repcoach.plan_normalizer import normalize_plan
from repcoach.plan_validator import validate_plan


logger = logging.getLogger(__name__)

SYSTEM_MESSAGE = (
    "You are a certified personal trainer and an encouraging coach. Use the lifter's "
    "vitals, preferences, workout history and per-exercise progression to choose what "
    "they should train today. Keep the plan familiar to their recent training while "
    "nudging progressive overload. Output MUST be valid JSON only, with no markdown. "
    "Use the exact schema given in the user message. Every exercise must be feasible "
    "with the listed equipment and units. Keep volume per muscle group within about "
    "20% of the recent average unless you justify it in 'why'."
)

SCHEMA_HINT = (
    'REQUIRED RESPONSE SCHEMA: { "name": "string", "units": "lb | kg", "blocks": [ '
    '{ "exercise": { "id": "string", "name": "string", "muscleGroup": "string", '
    '"equipment": "string", "pattern": "string" }, "sets": [ { "weight": "number", '
    '"reps": "number" } ], "notes": "string optional" } ], "why": { "overview": "string", '
    '"perExercise": [ { "exerciseName": "string", "reason": "string" } ], '
    '"volumeCheck": { "byMuscleGroup": [ { "group": "string", "todayVolume": 0, '
    '"recentAvg": 0, "deltaPct": 0, "ok": true } ] }, "safetyAndFeasibility": "string" } }'
)

FENCE_OPEN_RE = re.compile(r"^```\w*\n?")
FENCE_CLOSE_RE = re.compile(r"\n?```$")


class PlannerError(RuntimeError):
    """The external planner produced no usable plan."""


def strip_fences(text):
    text = (text or "").strip()
    if text.startswith("```"):
        text = FENCE_OPEN_RE.sub("", text)
        text = FENCE_CLOSE_RE.sub("", text)
        text = text.strip()
    return text


def build_user_content(context):
    return f"{SCHEMA_HINT} DATA FOLLOWS: {json.dumps(context, default=str)}"


class LLMPlanner:
    """Generates workout plans using Claude AI."""

    def __init__(self, api_key, config, client=None):
        """
        Initialize the planner.

        Args:
            api_key: Anthropic API key
            config: full configuration dictionary (uses the ``claude`` section)
            client: pre-built client, mainly for tests
        """
        claude = config.get("claude", {}) or {}
        if client is None:
            if not api_key:
                raise PlannerError("Missing Anthropic API key.")
            client = anthropic.Anthropic(api_key=api_key, timeout=claude.get("timeout", 120))
        self.client = client
        self.model = claude.get("model")
        self.max_tokens = claude.get("max_tokens", 4000)
        self.config = config

    def _request(self, user_content):
        message = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=SYSTEM_MESSAGE,
            messages=[{"role": "user", "content": user_content}],
        )
        content = getattr(message, "content", None) or []
        text = strip_fences(getattr(content[0], "text", "") if content else "")
        if not text:
            raise PlannerError("Empty response from Claude.")
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise PlannerError("Claude returned non-JSON content.") from exc

    def generate_plan(self, history, prefs=None, vitals=None, constraints=None, now_ms=None):
        """
        Ask Claude for today's plan.

        Returns:
            tuple(plan, validation): normalized plan dict and validate_plan output
        """
        prefs = prefs or {}
        context = build_planner_context(history, prefs, vitals, now_ms=now_ms)
        logger.info(
            "Requesting plan from %s (%d history rows, %d seed blocks)",
            self.model,
            len(context["HISTORY_SUMMARY"]),
            len(context["SEED_BLOCKS"]),
        )

        raw = self._request(build_user_content(context))
        plan = normalize_plan(raw)

        set_budget = compute_set_budget(
            prefs.get("goals", "hypertrophy"),
            vitals,
            prefs.get("timeBudgetMin", 45),
        )
        validation = validate_plan(plan, constraints, set_budget, prefs.get("equipment"))
        if validation["violations"]:
            logger.warning(validation["summary"])
        return plan, validation
