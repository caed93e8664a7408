"""
Terminology core: code systems, repository contract, translation resolver,
search orchestrator and problem-list export.
"""
