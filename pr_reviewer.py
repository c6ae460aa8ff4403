"""
AI Review Engine
Builds a deterministic review prompt for a pull request, calls the completion
API and turns the answer into a fully formed ReviewVerdict.

No default verdict is ever fabricated: an unparsable answer raises
MalformedVerdict, because an invented approval could unlock a payout.
"""

import json
import logging
import math
from dataclasses import dataclass, field, asdict
from typing import List

from agent_errors import MalformedVerdict
from eval_logger import save_evaluation

logger = logging.getLogger(__name__)

DEFAULT_CRITERIA = "Code must be readable, well structured, and solve the stated problem."
REVIEW_TEMPERATURE = 0.2

SYSTEM_PROMPT = "You are a strict JSON API. Only output valid JSON per the schema."

REVIEW_PROMPT = """You are a senior code reviewer.
Review the following GitHub pull request diff against the maintainer's criteria.
Return ONLY valid JSON with the exact structure:
{{
  "approved": boolean,
  "score": number between 0 and 100,
  "summary": string,
  "issues": string[],
  "suggestions": string[]
}}
Do not include markdown, commentary, or extra keys.
---
Repository: {repo}
Title: {title}
Contributor: {contributor}
Base Branch: {base_branch}
Head Branch: {head_branch}
Description: {description}
---
Criteria: {criteria}
---
Diff:
{diff}"""


@dataclass(frozen=True)
class ReviewVerdict:
    approved: bool
    score: int
    summary: str
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


# =============================================================================
# PARSING
# =============================================================================

def _coerce_score(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedVerdict("Verdict score is not numeric", details={"score": repr(value)})
    if isinstance(value, float) and not math.isfinite(value):
        raise MalformedVerdict("Verdict score is not finite", details={"score": repr(value)})
    return max(0, min(100, int(round(value))))


def _string_list(data, key):
    value = data[key]
    if not isinstance(value, list):
        raise MalformedVerdict(f"Verdict field {key!r} is not a list")
    return [str(item) for item in value]


def verdict_from_dict(data):
    """Validate a decoded verdict. Every field must be present."""
    if not isinstance(data, dict):
        raise MalformedVerdict("Verdict is not a JSON object")

    missing = [key for key in ("approved", "score", "summary", "issues", "suggestions") if key not in data]
    if missing:
        raise MalformedVerdict("Verdict is missing fields", details={"missing": missing})

    if not isinstance(data["approved"], bool):
        raise MalformedVerdict("Verdict field 'approved' is not a boolean")
    if not isinstance(data["summary"], str):
        raise MalformedVerdict("Verdict field 'summary' is not a string")

    return ReviewVerdict(
        approved=data["approved"],
        score=_coerce_score(data["score"]),
        summary=data["summary"].strip(),
        issues=_string_list(data, "issues"),
        suggestions=_string_list(data, "suggestions"),
    )


def parse_verdict(raw):
    """
    Parse the model's answer: the whole text first, then the span between the
    first '{' and the last '}' for answers wrapped in prose.
    """
    text = (raw or "").strip()

    try:
        return verdict_from_dict(json.loads(text))
    except json.JSONDecodeError:
        pass

    first, last = text.find("{"), text.rfind("}")
    if first < 0 or last <= first:
        raise MalformedVerdict("Unable to parse AI response as JSON", details={"response": text[:200]})

    try:
        data = json.loads(text[first:last + 1])
    except json.JSONDecodeError as e:
        raise MalformedVerdict("Unable to parse AI response as JSON", details={"response": text[:200]}) from e
    return verdict_from_dict(data)


# =============================================================================
# REVIEW
# =============================================================================

class PRReviewer:
    def __init__(self, ai_provider, criteria_store, eval_log_dir=None):
        self.ai = ai_provider
        self.criteria_store = criteria_store
        self.eval_log_dir = eval_log_dir

    def resolve_criteria(self, repo_full_name, criteria=None):
        """Explicit criteria > stored repository criteria > default."""
        return criteria or self.criteria_store.get(repo_full_name) or DEFAULT_CRITERIA

    @staticmethod
    def build_prompt(diff, repo_full_name, metadata, criteria):
        return REVIEW_PROMPT.format(
            repo=repo_full_name,
            title=metadata.title,
            contributor=metadata.contributor,
            base_branch=metadata.base_branch,
            head_branch=metadata.head_branch,
            description=metadata.body or "(no description)",
            criteria=criteria,
            diff=diff,
        )

    def review(self, diff, repo_full_name, metadata, criteria=None):
        """
        Review one pull request.
        Raises DependencyUnavailable (API failure) or MalformedVerdict.
        """
        resolved = self.resolve_criteria(repo_full_name, criteria)
        prompt = self.build_prompt(diff, repo_full_name, metadata, resolved)

        raw = self.ai.complete(SYSTEM_PROMPT, prompt, temperature=REVIEW_TEMPERATURE)

        try:
            verdict = parse_verdict(raw)
        except MalformedVerdict:
            logger.error("malformed verdict | repo=%s pr=%s response=%.200s", repo_full_name, metadata.number, raw)
            save_evaluation(self.eval_log_dir, raw, {"repo": repo_full_name, "pr_number": metadata.number, "parsed": False})
            raise

        save_evaluation(self.eval_log_dir, raw, {
            "repo": repo_full_name,
            "pr_number": metadata.number,
            "approved": verdict.approved,
            "score": verdict.score,
        })
        logger.info("review complete | repo=%s pr=%s approved=%s score=%d",
                    repo_full_name, metadata.number, verdict.approved, verdict.score)
        return verdict
