"""Service layer for Infraflow.

Provides the conversation store, notification sink, backend clients,
plan runner and the orchestration coordinator.
"""
