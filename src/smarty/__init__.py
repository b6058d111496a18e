"""Change-request orchestration service for the Smarty Agent.

This package turns a natural-language change request into a pushed
branch and an opened pull request, providing:
- HTTP intake with bearer authentication, CORS and rate limiting
- Repository synchronization against the baseline branch
- Branch naming (deterministic or model-assisted)
- Claude Code execution as a constrained subprocess
- Post-run safety verification of branch and commits
- Branch publishing and pull request creation on the forge
"""
