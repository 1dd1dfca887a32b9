"""Built-in rules and defaults for common agent safety patterns."""

from __future__ import annotations

from hookguard.events import EventKind
from hookguard.rules import MatchKind, Rule, Severity

_SHELL = ("Bash",)


def dangerous_command_rules() -> list[Rule]:
    """Denylist for shell commands that destroy data or escalate access.

    Blocked by default:
    - rm -rf (any target), fork bombs
    - mkfs / dd onto block devices
    - chmod 777, piping downloads into a shell
    - printenv / env (dump all env vars)
    """
    return [
        Rule(
            id="destructive-rm",
            pattern=r"\brm\s+(-[a-zA-Z]*r[a-zA-Z]*f[a-zA-Z]*|-[a-zA-Z]*f[a-zA-Z]*r[a-zA-Z]*|-r\s+-f|-f\s+-r)\b",
            message="Recursive forced deletion (rm -rf) is not allowed.",
            field="command",
            tools=_SHELL,
        ),
        Rule(
            id="fork-bomb",
            pattern=":(){ :|:& };:",
            match=MatchKind.SUBSTRING,
            message="Fork bomb detected.",
            field="command",
            tools=_SHELL,
        ),
        Rule(
            id="format-disk",
            pattern=r"\b(mkfs(\.\w+)?|dd\s+[^|;]*of=/dev/(sd|nvme|hd|disk))",
            message="Formatting or overwriting a block device is not allowed.",
            field="command",
            tools=_SHELL,
        ),
        Rule(
            id="world-writable",
            pattern=r"\bchmod\s+(-R\s+)?0?777\b",
            message="Making files world-writable (chmod 777) is not allowed.",
            field="command",
            tools=_SHELL,
        ),
        Rule(
            id="pipe-to-shell",
            pattern=r"\b(curl|wget)\b[^|]*\|\s*(sudo\s+)?(ba|z)?sh\b",
            message="Piping a download straight into a shell is not allowed.",
            field="command",
            tools=_SHELL,
        ),
        Rule(
            id="dump-environment",
            pattern=r"^\s*(printenv|env)\s*($|[|;&>])",
            message="Dumping environment variables may expose secrets.",
            field="command",
            tools=_SHELL,
        ),
        Rule(
            id="sudo",
            pattern=r"(^|[;&|]\s*)sudo\b",
            message="Commands run through sudo need manual review.",
            field="command",
            tools=_SHELL,
            severity=Severity.INFO,
        ),
    ]


def sensitive_prompt_rules() -> list[Rule]:
    """Block prompts that carry credentials in plain text."""
    prompt_only = (EventKind.USER_PROMPT_SUBMIT,)
    return [
        Rule(
            id="prompt-password",
            pattern=r"\b(password|passwd|pwd)\s*[:=]\s*\S+",
            message="Prompt contains a password. Remove it and reference a secret store instead.",
            field="prompt",
            events=prompt_only,
        ),
        Rule(
            id="prompt-api-key",
            pattern=(
                r"\b(api[_-]?key|secret|token)\s*[:=]\s*\S+"
                r"|\b(sk-[a-zA-Z0-9]{20,}|AKIA[A-Z0-9]{16}|ghp_[a-zA-Z0-9]{36})"
            ),
            message="Prompt contains an API key or token. Remove it before submitting.",
            field="prompt",
            events=prompt_only,
        ),
        Rule(
            id="prompt-private-key",
            pattern="-----BEGIN",
            match=MatchKind.SUBSTRING,
            message="Prompt contains a private key block.",
            field="prompt",
            events=prompt_only,
        ),
    ]


def default_rules() -> list[Rule]:
    return dangerous_command_rules() + sensitive_prompt_rules()


DEFAULT_PROTECTED_NAMES: tuple[str, ...] = (
    ".env",
    "id_rsa",
    "id_ed25519",
    ".pem",
    "credentials",
    ".git-credentials",
    ".npmrc",
    ".pypirc",
    "secrets",
)

DEFAULT_TEMPLATES: dict[str, str] = {
    "@security": (
        "Follow secure coding practices: apply input validation and sanitization, "
        "use parameterized queries, and never log secrets."
    ),
    "@tests": "Write unit tests covering the happy path and the main edge cases.",
    "@perf": "Keep an eye on performance: avoid unnecessary allocations and N+1 queries.",
    "@docs": "Document public functions and update any affected README sections.",
}

DEFAULT_RESULT_MARKERS: tuple[str, ...] = (
    "api_key=",
    "apikey=",
    "api-key:",
    "password=",
    "passwd=",
    "secret=",
    "token=",
    "aws_secret_access_key",
    "-----BEGIN",
)

DEFAULT_RETRY_BUDGET = 2

# Keys whose string values never reach an audit log or a tool result.
DEFAULT_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "passphrase",
        "secret",
        "client_secret",
        "token",
        "access_token",
        "refresh_token",
        "api_key",
        "apikey",
        "authorization",
        "cookie",
        "credentials",
        "private_key",
        "ssh_key",
        "connection_string",
        "database_url",
    }
)

# Any key containing one of these is treated as sensitive too.
SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = ("token", "key", "secret", "password", "credential")

# Well-known credential prefixes: OpenAI, AWS, JWT, GitHub, Slack.
SECRET_VALUE_PATTERN = (
    r"(sk-[a-zA-Z0-9]{20,}"
    r"|AKIA[A-Z0-9]{16}"
    r"|eyJ[a-zA-Z0-9_-]{20,}\."
    r"|ghp_[a-zA-Z0-9]{36}"
    r"|xox[bpas]-[a-zA-Z0-9-]{10,})"
)

# (pattern, replacement) pairs applied to shell commands before they are logged.
COMMAND_SECRET_PATTERNS: tuple[tuple[str, str], ...] = (
    (r"(export\s+\w*(?:KEY|TOKEN|SECRET|PASSWORD|CREDENTIAL)\w*=)\S+", r"\1[REDACTED]"),
    (r"((?:^|\s)-p)[^\s-]\S*", r"\1[REDACTED]"),
    (r"(--password[= ])\S+", r"\1[REDACTED]"),
    (r"(://[^\s:/@]+:)[^\s@]+(@)", r"\1[REDACTED]\2"),
)
