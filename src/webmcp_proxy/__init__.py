"""
WebMCP proxy: a policy-enforcing gateway between AI agents and an Omeka-S
style resource API, plus the agent-facing tool catalog that talks to it.
"""

__version__ = "0.1.0"
