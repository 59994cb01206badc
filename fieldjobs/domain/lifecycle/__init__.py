"""
Lifecycle Domain

Job status state machine, execution flow (start, completion review,
cancellation requests), limbo detection and schedule impact analysis.
"""
