"""Autonomous Shengji table agent."""

__all__ = [
    "client",
    "config",
    "controller",
    "dictionary",
    "resolve",
    "rules",
    "strategies",
    "utils",
    "validate",
    "wire",
]
