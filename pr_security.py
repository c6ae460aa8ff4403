"""
Nyx PR Security Module
Webhook signature verification, command parsing and security event logging
for the bounty pipeline.
"""

import os
import re
import hmac
import json
import hashlib
import logging
import threading
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIG
# =============================================================================

SECURITY_LOG_NAME = "security_logs.json"
MAX_SECURITY_EVENTS = 1000

# Authors allowed to attach bounties through /bounty commands
TRUSTED_ASSOCIATIONS = {"OWNER", "MEMBER", "COLLABORATOR"}

# Trailing sentence punctuation ends the amount: "/bounty 12.5." -> "12.5"
BOUNTY_COMMAND_RE = re.compile(r'/bounty\s+(\S+?)(?=[.,;:!?)]*(?:\s|$))', re.IGNORECASE)
BOUNTY_AMOUNT_RE = re.compile(r'^\d+(?:\.\d{1,24})?$')
ISSUE_REF_RE = re.compile(r'#(\d+)\b')

_log_lock = threading.Lock()

# =============================================================================
# DATA HELPERS
# =============================================================================

def load_json_data(filepath, default=None):
    """Load JSON data from file, return default if missing or unreadable."""
    if default is None:
        default = {}

    if not os.path.exists(filepath):
        return default

    try:
        with open(filepath, 'r') as f:
            return json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        logger.error("failed to load json | path=%s error=%s", filepath, e)
        return default


def save_json_data(filepath, data):
    """Save JSON data to file, creating the parent directory."""
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(filepath, 'w') as f:
        json.dump(data, f, indent=2)

# =============================================================================
# GITHUB WEBHOOK SIGNATURE VERIFICATION
# =============================================================================

def verify_github_signature(payload_body, signature_header, secret):
    """
    Verify GitHub webhook signature over the exact raw body.
    Returns: is_valid (bool). Never raises.
    """
    if not signature_header or not secret:
        return False

    # GitHub sends signature as "sha256=<hash>"
    if not signature_header.startswith('sha256='):
        return False

    expected_signature = signature_header[len('sha256='):]

    mac = hmac.new(
        secret.encode('utf-8'),
        msg=payload_body or b"",
        digestmod=hashlib.sha256
    )
    calculated_signature = mac.hexdigest()

    return hmac.compare_digest(calculated_signature, expected_signature)

# =============================================================================
# COMMAND PARSING
# =============================================================================

def extract_bounty_amount(text):
    """
    Find the first `/bounty <amount>` command in text.
    Returns: (amount or None, error or None). Malformed amounts are rejected.
    """
    if not text:
        return None, None

    match = BOUNTY_COMMAND_RE.search(text)
    if not match:
        return None, None

    raw = match.group(1)
    if not BOUNTY_AMOUNT_RE.match(raw):
        return None, f"Malformed bounty amount: {raw!r}"

    if not any(ch in "123456789" for ch in raw):
        return None, "Bounty amount must be greater than zero"

    return raw, None


def extract_issue_references(text, exclude=None):
    """Distinct `#N` references in order of first appearance."""
    if not text:
        return []

    seen = []
    for match in ISSUE_REF_RE.finditer(text):
        number = int(match.group(1))
        if number == exclude or number in seen:
            continue
        seen.append(number)
    return seen


def link_wallet_pattern(suffix):
    """Regex for `/link-wallet <account><suffix>` on the configured network."""
    return re.compile(
        r'/link-wallet\s+`?([a-z0-9](?:[a-z0-9_\-.]*[a-z0-9])?' + re.escape(suffix) + r')`?(?![\w-]|\.\w)',
        re.IGNORECASE,
    )


def extract_linked_wallet(text, suffix):
    """
    Extract the first wallet linked via /link-wallet in text.
    Returns: wallet (lowercased) or None.
    """
    if not text:
        return None

    match = link_wallet_pattern(suffix).search(text)
    if not match:
        return None
    return match.group(1).lower()


def is_trusted_association(association):
    return (association or "").upper() in TRUSTED_ASSOCIATIONS

# =============================================================================
# SECURITY LOGGING
# =============================================================================

def log_security_event(event_type, details, data_dir=None):
    """
    Log security events (invalid signatures, untrusted commands, payout failures).
    Persists the last MAX_SECURITY_EVENTS events when data_dir is set.
    """
    logger.warning("security event | type=%s details=%s", event_type, details)

    if not data_dir:
        return

    event = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "type": event_type,
        "details": details
    }

    filepath = os.path.join(data_dir, SECURITY_LOG_NAME)
    with _log_lock:
        logs = load_json_data(filepath, default={"events": []})
        logs["events"].append(event)

        # Keep only last events to prevent file bloat
        if len(logs["events"]) > MAX_SECURITY_EVENTS:
            logs["events"] = logs["events"][-MAX_SECURITY_EVENTS:]

        try:
            save_json_data(filepath, logs)
        except IOError as e:
            logger.error("failed to persist security event | error=%s", e)
