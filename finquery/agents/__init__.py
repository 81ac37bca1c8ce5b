"""
LLM-backed agents.

- QueryInterpreterAgent: natural-language query to QuerySpec
- InsightAgent: narrative summary of an executed result
- SuggestionAgent: example questions for the registered sheets
- ReportAgent: Markdown financial reports from sheet rows
"""

from finquery.agents.insights import InsightAgent
from finquery.agents.interpreter import QueryInterpreterAgent
from finquery.agents.reports import ReportAgent
from finquery.agents.suggestions import SuggestionAgent

__all__ = ["InsightAgent", "QueryInterpreterAgent", "ReportAgent", "SuggestionAgent"]
