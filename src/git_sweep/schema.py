"""MCP-compatible tool schema for AI agents."""

from __future__ import annotations

from ._version import __version__

OUTCOMES = [
    "fast_forwarded",
    "would_fast_forward",
    "up_to_date",
    "manual_merge",
    "unrelated",
    "fetched",
    "skipped",
    "error",
]

SKIP_REASONS = [
    "not_clean_state",
    "status_failed",
    "dirty",
    "no_workdir",
    "detached_head",
    "no_upstream",
    "unborn",
]


def _path_property() -> dict:
    return {
        "type": "string",
        "description": "Directory whose immediate subdirectories are repositories (default: current directory)",
        "default": ".",
    }


def get_tool_schema() -> dict:
    """Generate MCP-compatible tool schema for AI agents."""
    return {
        "name": "git-sweep",
        "version": __version__,
        "description": "Fast-forward every Git repository directly under a directory. Fetches the upstream branch of HEAD over SSH and fast-forwards pristine working trees. Never merges, rebases or touches local changes; diverged branches are reported for manual merging.",
        "usage": "git-sweep <command> [path] [options]",
        "tools": [
            {
                "name": "sync",
                "description": "Fetch the upstream branch of every repository and fast-forward the ones with a pristine working tree. Dirty repositories are fetched only. Repositories that are mid-merge/rebase, detached or without upstream are skipped. Exit code is 1 if any repository failed (auth, network, missing ref, update or checkout error).",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "path": _path_property(),
                        "json": {
                            "type": "boolean",
                            "description": "Output as JSON for machine parsing",
                            "default": False,
                        },
                        "dry_run": {
                            "type": "boolean",
                            "description": "Fetch and analyze but do not fast-forward",
                            "default": False,
                        },
                        "sequential": {
                            "type": "boolean",
                            "description": "Run sequentially instead of parallel",
                            "default": False,
                        },
                        "workers": {
                            "type": "integer",
                            "description": "Maximum repositories processed in parallel. Auto-resolved from $GIT_SWEEP_WORKERS, default 8",
                        },
                        "ssh_key": {
                            "type": "string",
                            "description": "SSH private key used for every fetch. Auto-resolved from $GIT_SWEEP_SSH_KEY → ~/.ssh/id_rsa",
                        },
                        "ssh_user": {
                            "type": "string",
                            "description": "SSH user name. Auto-resolved from $GIT_SWEEP_SSH_USER → remote URL → git",
                        },
                    },
                    "required": [],
                },
                "outputSchema": {
                    "type": "object",
                    "properties": {
                        "root": {"type": "string"},
                        "results": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "path": {"type": "string"},
                                    "name": {"type": "string"},
                                    "success": {"type": "boolean"},
                                    "action": {"type": "string", "enum": ["skip", "pull", "fetch"]},
                                    "outcome": {"type": "string", "enum": OUTCOMES},
                                    "branch": {"type": "string"},
                                    "old_tip": {"type": "string"},
                                    "new_tip": {"type": "string"},
                                    "message": {"type": "string"},
                                    "error": {"type": "string"},
                                    "skip_reason": {
                                        "type": ["string", "null"],
                                        "enum": [*SKIP_REASONS, None],
                                    },
                                },
                            },
                        },
                        "summary": {
                            "type": "object",
                            "properties": {
                                "total": {"type": "integer"},
                                "fast_forwarded": {"type": "integer"},
                                "up_to_date": {"type": "integer"},
                                "manual_merge": {"type": "integer"},
                                "fetched": {"type": "integer"},
                                "skipped": {"type": "integer"},
                                "errors": {"type": "integer"},
                                "failed": {"type": "boolean"},
                            },
                        },
                    },
                },
                "examples": [
                    {
                        "description": "Update all repos in ~/Development",
                        "command": "git-sweep sync ~/Development --json",
                    },
                    {
                        "description": "See what would be fast-forwarded",
                        "command": "git-sweep sync --dry-run --json",
                    },
                    {
                        "description": "Use a dedicated deploy key",
                        "command": "git-sweep sync --ssh-key ~/.ssh/id_ed25519",
                    },
                ],
            },
            {
                "name": "plan",
                "description": "Classify every repository (pull, fetch-only or skip with a reason) without network access or changes.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "path": _path_property(),
                        "json": {
                            "type": "boolean",
                            "description": "Output as JSON for machine parsing",
                            "default": False,
                        },
                    },
                    "required": [],
                },
                "outputSchema": {
                    "type": "object",
                    "properties": {
                        "root": {"type": "string"},
                        "repositories": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "path": {"type": "string"},
                                    "name": {"type": "string"},
                                    "action": {"type": "string", "enum": ["skip", "pull", "fetch"]},
                                    "skip_reason": {
                                        "type": ["string", "null"],
                                        "enum": [*SKIP_REASONS, None],
                                    },
                                },
                            },
                        },
                    },
                },
                "examples": [
                    {
                        "description": "Preview which repos are safe to update",
                        "command": "git-sweep plan ~/Development",
                    },
                ],
            },
        ],
    }
