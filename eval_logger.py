"""
AI Evaluation Logger
Persists raw AI review outputs next to their parsed verdicts so review quality
can be audited later. Disabled unless a log directory is configured.
"""

import os
import json
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

REVIEW_SUBDIR = "pr_reviews"


def save_evaluation(log_dir, ai_response_text, metadata=None):
    """
    Save one AI review response for analysis.

    Args:
        log_dir: Root directory; nothing is written when empty
        ai_response_text: Raw AI response string (usually JSON)
        metadata: Dict with context (repo, pr_number, score, approved, ...)

    Returns: (filepath, error) tuple
    """
    if not log_dir:
        return None, None

    save_dir = os.path.join(log_dir, REVIEW_SUBDIR)
    metadata = metadata or {}

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
    repo_slug = str(metadata.get("repo", "unknown")).replace("/", "__")
    identifier = f"_pr{metadata['pr_number']}" if "pr_number" in metadata else ""
    filepath = os.path.join(save_dir, f"{timestamp}_{repo_slug}{identifier}.json")

    parsed_response = None
    try:
        parsed_response = json.loads(ai_response_text)
    except (json.JSONDecodeError, TypeError):
        pass

    record = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "ai_response_raw": ai_response_text,
        "ai_response_parsed": parsed_response,
        "metadata": metadata,
    }

    try:
        os.makedirs(save_dir, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(record, f, indent=2)
        return filepath, None
    except OSError as e:
        logger.error("eval log save failed | path=%s error=%s", filepath, e)
        return None, str(e)
