# @TASK P4-T4.1 - API package init

"""Vault search REST API package.

Sub-modules expose FastAPI routers:
- search: hybrid search, quick search, suggestions and similar records
"""
