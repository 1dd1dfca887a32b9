"""Policy bundles shared across test modules."""

MINIMAL = """\
apiVersion: hookguard/v1
kind: HookPolicy
metadata:
  name: minimal
defaults:
  fail_mode: closed
"""


FULL = """\
apiVersion: hookguard/v1
kind: HookPolicy
metadata:
  name: full
  description: "Every section."
defaults:
  fail_mode: open
  timeout_ms: 1500
  builtin_rules: false
tools:
  Deploy:
    required_params: [env]
    timeout_ms: 300
rules:
  - id: no-prod
    tools: [Deploy]
    field: env
    pattern: '^prod$'
    message: "Deploy to staging first."
paths:
  allowed_root: /work
  protected_names: [".env"]
prompts:
  templates:
    "@ship": "Run the release checklist."
  context_prefix: false
results:
  markers: ["INTERNAL"]
  retry_budget: 3
lifecycle:
  enabled: true
cache:
  max_entries: 64
hooks:
  PreToolUse:
    command: ["python", "-m", "my_hook"]
    timeout_ms: 2000
observability:
  stderr: false
"""
