"""Starter .notionpatch.toml written by `notionpatch init`."""

CONFIG_FILENAME = ".notionpatch.toml"

DEFAULT_TOML = """\
# notionpatch configuration
version = "1.0"

[auth]
# token = "ntn_..."        # NOTION_TOKEN and --token take precedence

[client]
timeout_ms = 30000

[rate_limit]
max_calls = 3              # calls allowed per window
window_seconds = 1.0

[retry]
max_attempts = 3           # total attempts, including the first
base_delay = 1.0
max_delay = 30.0
multiplier = 2.0
jitter = true

[output]
format = "terminal"        # terminal | json
"""
