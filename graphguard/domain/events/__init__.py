"""Domain Event definitions.

Represents significant occurrences around outbound Graph calls (deferrals,
retries, circuit transitions) that other parts of the system might react to.
"""
