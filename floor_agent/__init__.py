"""
Factory-floor MCP aggregator agent.
"""
