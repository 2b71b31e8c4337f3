"""
compose-pack renders versioned, parameterized charts into self contained
docker compose release directories and compares them with what is deployed.
"""

__all__ = [
    "loader",
    "chart",
    "values",
    "template",
    "compose",
    "release",
    "runtime",
    "diff",
    "orchestrator",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
