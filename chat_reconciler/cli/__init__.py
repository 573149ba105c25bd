"""Click command-line interface: run commands, config bootstrap and reports."""

__all__ = [
    "commands",
    "common",
    "config_cmd",
    "report",
    "run_cmd",
]
