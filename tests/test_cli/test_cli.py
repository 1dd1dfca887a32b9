"""hookguard CLI tests.

Exit codes: 0 = success, 1 = validation/policy error or synthesized
failure, 2 = usage error. ``hook`` writes exactly one decision to
stdout; everything else goes to stderr.
"""

from __future__ import annotations

import json
import sys
import tempfile

from click.testing import CliRunner

from hookguard.cli.main import cli
from tests.policies import FULL, MINIMAL

# ---------------------------------------------------------------------------
# Test fixtures: YAML bundles
# ---------------------------------------------------------------------------

QUIET = MINIMAL + "observability:\n  stderr: false\n"

INVALID_DUPLICATE_ID = MINIMAL + (
    "rules:\n"
    "  - {id: same-id, pattern: a, message: First.}\n"
    "  - {id: same-id, pattern: b, message: Duplicate.}\n"
)

INVALID_BAD_REGEX = MINIMAL + "rules:\n  - {id: bad-regex-rule, pattern: '[invalid(regex', message: m}\n"

INVALID_YAML_SYNTAX = """\
apiVersion: hookguard/v1
kind: HookPolicy
metadata:
  name: broken
defaults:
  fail_mode: { closed
"""

ENFORCED = QUIET + "lifecycle:\n  enabled: true\n  enforce: true\n"

HOOK_SCRIPT = """\
print('{"action": "block", "message": "from hook"}')
"""

SAFE = {"event_kind": "PreToolUse", "tool_name": "Bash", "params": {"command": "ls -la"}}
DESTRUCTIVE = {"event_kind": "PreToolUse", "tool_name": "Bash", "params": {"command": "rm -rf /"}}


def write_file(content: str, suffix: str = ".yaml") -> str:
    f = tempfile.NamedTemporaryFile(mode="w", suffix=suffix, delete=False)
    f.write(content)
    f.close()
    return f.name


def hooked_policy() -> str:
    script = write_file(HOOK_SCRIPT, suffix=".py")
    command = json.dumps([sys.executable, script])
    return QUIET + f"hooks:\n  PreToolUse:\n    command: {command}\n"


def _decision(result) -> dict:
    lines = [line for line in result.stdout.splitlines() if line.strip()]
    assert len(lines) == 1, result.stdout
    return json.loads(lines[0])


# ---------------------------------------------------------------------------
# 1. hookguard hook
# ---------------------------------------------------------------------------


class TestHookCommand:
    def test_safe_event_allowed(self):
        path = write_file(QUIET)
        result = CliRunner().invoke(cli, ["hook", "--policy", path], input=json.dumps(SAFE))
        assert result.exit_code == 0
        assert _decision(result) == {"action": "allow"}

    def test_destructive_command_blocked(self):
        path = write_file(QUIET)
        result = CliRunner().invoke(cli, ["hook", "--policy", path], input=json.dumps(DESTRUCTIVE))
        assert result.exit_code == 0
        decision = _decision(result)
        assert decision["action"] == "block"
        assert decision["rule_id"] == "destructive-rm"

    def test_missing_event_kind(self):
        path = write_file(QUIET)
        result = CliRunner().invoke(cli, ["hook", "--policy", path], input="{}")
        assert result.exit_code == 1
        decision = _decision(result)
        assert decision["action"] == "block"
        assert decision["error"] == "UnknownEventKind"

    def test_invalid_json_on_stdin(self):
        path = write_file(QUIET)
        result = CliRunner().invoke(cli, ["hook", "--policy", path], input="not json")
        assert result.exit_code == 1
        assert _decision(result)["error"] == "UnknownEventKind"

    def test_fail_mode_override_only_changes_failures(self):
        path = write_file(QUIET)
        result = CliRunner().invoke(
            cli, ["hook", "--policy", path, "--fail-mode", "open"], input=json.dumps(DESTRUCTIVE)
        )
        assert _decision(result)["action"] == "block"

    def test_claude_style_payload(self):
        path = write_file(QUIET)
        payload = {"hook_event_name": "PostToolUse", "tool_name": "Read", "tool_response": {"output": "token=abc"}}
        result = CliRunner().invoke(cli, ["hook", "--policy", path], input=json.dumps(payload))
        assert result.exit_code == 0
        decision = _decision(result)
        assert decision["action"] == "continue"
        assert decision["modified_payload"]["result"]["output"] == "[REDACTED]"

    def test_prompt_template(self):
        path = write_file(QUIET)
        payload = {"event_kind": "UserPromptSubmit", "prompt": "@security implement login"}
        result = CliRunner().invoke(cli, ["hook", "--policy", path], input=json.dumps(payload))
        decision = _decision(result)
        assert decision["action"] == "continue"
        assert "input validation" in decision["modified_payload"]["prompt"]

    def test_template_option(self):
        payload = {
            "event_kind": "PreToolUse",
            "tool_name": "Bash",
            "params": {"command": "git push --force origin main"},
        }
        result = CliRunner().invoke(cli, ["hook", "--template", "default"], input=json.dumps(payload))
        assert result.exit_code == 0
        assert _decision(result)["rule_id"] == "force-push"

    def test_default_policy_audits_to_stderr(self):
        result = CliRunner().invoke(cli, ["hook"], input=json.dumps(DESTRUCTIVE))
        assert result.exit_code == 0
        assert _decision(result)["action"] == "block"
        audit = json.loads(result.stderr.strip().splitlines()[-1])
        assert audit["action"] == "event_blocked"

    def test_policy_and_template_exclusive(self):
        path = write_file(QUIET)
        result = CliRunner().invoke(cli, ["hook", "--policy", path, "--template", "strict"], input="{}")
        assert result.exit_code == 2

    def test_unknown_template_blocks(self):
        result = CliRunner().invoke(cli, ["hook", "--template", "nope"], input=json.dumps(SAFE))
        assert result.exit_code == 1
        decision = _decision(result)
        assert decision["action"] == "block"
        assert "could not be loaded" in decision["message"]

    def test_policy_from_environment(self):
        path = write_file(QUIET)
        result = CliRunner(env={"HOOKGUARD_POLICY": path}).invoke(cli, ["hook"], input=json.dumps(DESTRUCTIVE))
        assert _decision(result)["rule_id"] == "destructive-rm"

    def test_lifecycle_state_persists_between_invocations(self, tmp_path):
        path = write_file(ENFORCED)
        runner = CliRunner(env={"HOOKGUARD_STATE_DIR": str(tmp_path)})

        start_event = json.dumps({"event_kind": "SessionStart", "session_id": "s"})
        start = runner.invoke(cli, ["hook", "--policy", path], input=start_event)
        assert start.exit_code == 0

        again = runner.invoke(cli, ["hook", "--policy", path], input=start_event)
        assert again.exit_code == 1
        assert _decision(again)["error"] == "LifecycleViolation"
        assert (tmp_path / "state.json").exists()

    def test_unwritable_state_still_answers(self, tmp_path):
        path = write_file(ENFORCED)
        state_dir = tmp_path / "not-a-dir"
        state_dir.write_text("")
        runner = CliRunner(env={"HOOKGUARD_STATE_DIR": str(state_dir)})
        result = runner.invoke(
            cli, ["hook", "--policy", path], input=json.dumps({"event_kind": "SessionStart", "session_id": "s"})
        )
        assert result.exit_code == 0
        assert _decision(result)["action"] == "continue"


# ---------------------------------------------------------------------------
# 2. hookguard validate
# ---------------------------------------------------------------------------


class TestValidateCommand:
    def test_valid_bundle(self):
        path = write_file(FULL)
        result = CliRunner().invoke(cli, ["validate", path])
        assert result.exit_code == 0
        assert "1 rules" in result.output
        assert "1 hooks" in result.output

    def test_multiple_valid_files(self):
        result = CliRunner().invoke(cli, ["validate", write_file(MINIMAL), write_file(FULL)])
        assert result.exit_code == 0

    def test_duplicate_id_reports_error(self):
        result = CliRunner().invoke(cli, ["validate", write_file(INVALID_DUPLICATE_ID)])
        assert result.exit_code == 1
        assert "same-id" in result.output

    def test_bad_regex_reports_error(self):
        result = CliRunner().invoke(cli, ["validate", write_file(INVALID_BAD_REGEX)])
        assert result.exit_code == 1
        assert "regex" in result.output.lower()

    def test_yaml_syntax_error(self):
        result = CliRunner().invoke(cli, ["validate", write_file(INVALID_YAML_SYNTAX)])
        assert result.exit_code == 1
        assert "yaml" in result.output.lower()

    def test_nonexistent_file(self):
        result = CliRunner().invoke(cli, ["validate", "/nonexistent/file.yaml"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_mixed_valid_and_invalid(self):
        result = CliRunner().invoke(cli, ["validate", write_file(FULL), write_file(INVALID_DUPLICATE_ID)])
        assert result.exit_code == 1
        assert "1 rules" in result.output


# ---------------------------------------------------------------------------
# 3. hookguard check
# ---------------------------------------------------------------------------


class TestCheckCommand:
    def test_allowed(self):
        path = write_file(MINIMAL)
        result = CliRunner().invoke(cli, ["check", path, "--event", json.dumps(SAFE)])
        assert result.exit_code == 0
        assert "ALLOW" in result.output

    def test_blocked(self):
        path = write_file(MINIMAL)
        result = CliRunner().invoke(cli, ["check", path, "--event", json.dumps(DESTRUCTIVE)])
        assert result.exit_code == 1
        assert "BLOCK" in result.output
        assert "destructive-rm" in result.output

    def test_json_output(self):
        path = write_file(MINIMAL)
        result = CliRunner().invoke(cli, ["check", path, "--event", json.dumps(DESTRUCTIVE), "--json"])
        assert result.exit_code == 1
        assert _decision(result)["rule_id"] == "destructive-rm"

    def test_failure_shows_error_code(self):
        path = write_file(MINIMAL)
        result = CliRunner().invoke(cli, ["check", path, "--event", "{}", "--json"])
        assert _decision(result)["error"] == "UnknownEventKind"

    def test_fail_mode_open(self):
        path = write_file(MINIMAL)
        result = CliRunner().invoke(
            cli, ["check", path, "--event", '{"event_kind": "Bogus"}', "--fail-mode", "open", "--json"]
        )
        # Unknown kinds block even when failing open.
        assert _decision(result)["action"] == "block"

    def test_invalid_event_json(self):
        path = write_file(MINIMAL)
        result = CliRunner().invoke(cli, ["check", path, "--event", "{nope"])
        assert result.exit_code == 2

    def test_invalid_policy(self):
        path = write_file(INVALID_YAML_SYNTAX)
        result = CliRunner().invoke(cli, ["check", path, "--event", json.dumps(SAFE)])
        assert result.exit_code == 1
        assert "Failed to load policy" in result.output


# ---------------------------------------------------------------------------
# 4. hookguard run
# ---------------------------------------------------------------------------


class TestRunCommand:
    def test_runs_configured_hook(self):
        path = write_file(hooked_policy())
        result = CliRunner().invoke(cli, ["run", path, "--event", json.dumps(SAFE)])
        assert result.exit_code == 0
        assert _decision(result) == {"action": "block", "message": "from hook"}

    def test_no_hook_configured(self):
        path = write_file(QUIET)
        result = CliRunner().invoke(cli, ["run", path, "--event", json.dumps(SAFE)])
        assert result.exit_code == 0
        assert _decision(result)["action"] == "allow"

    def test_invalid_event(self):
        path = write_file(QUIET)
        result = CliRunner().invoke(cli, ["run", path, "--event", "{}"])
        assert result.exit_code == 1
        assert _decision(result)["error"] == "UnknownEventKind"


# ---------------------------------------------------------------------------
# 5. misc
# ---------------------------------------------------------------------------


class TestGroup:
    def test_version(self):
        result = CliRunner().invoke(cli, ["version"])
        assert result.exit_code == 0
        assert result.output.startswith("hookguard ")

    def test_help_without_command(self):
        result = CliRunner().invoke(cli, [])
        assert result.exit_code == 0
        assert "hook" in result.output
        assert "validate" in result.output

    def test_log_level_choice(self):
        result = CliRunner().invoke(cli, ["--log-level", "LOUD", "version"])
        assert result.exit_code == 2
