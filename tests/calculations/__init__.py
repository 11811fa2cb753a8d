"""
Calculation adapter tests.

Adapters run against a seeded InMemoryContentStore; calculators are called
directly except where the job queue path itself is under test.
"""
