"""
Job queue test suite: ordering, execution, retry, scheduling and service wiring.
"""
