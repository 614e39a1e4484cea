"""Core grading logic: rules, weighting, scoring, identity and comparison.

This module is framework-agnostic. It has no dependency on MCP, FastMCP,
the database layer or any server framework. The MCP server and the run
store both import from here.
"""
