"""Orchestration core.

Subpackages:
    planning: Execution plan state machine with the approval gate.
    autonomous: Autonomous loop controller and its stop/continue classifier.
    recovery: Provisioning failure classifier and error recovery engine.
    events: Ordered per-conversation event emitter.
    rules: Externally configurable rule tables.
    models: Data model shared by all of the above.
"""
