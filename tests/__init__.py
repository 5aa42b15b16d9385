"""Tests for mcp-planner."""
