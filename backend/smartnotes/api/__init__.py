# @TASK P4-T4.1 - API package

"""SmartNotes AI REST API package.

Sub-modules expose FastAPI routers:
- search: hybrid search, embeddings, suggestions, engine status and metrics
"""
