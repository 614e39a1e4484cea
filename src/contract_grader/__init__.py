"""Contract Grader MCP Server.

Grade OpenAPI contracts against a weighted ruleset: category scores, letter grade,
auto-fail gate, reproducible content hashes, run history and version comparison.
"""

__version__ = "1.2.0"
