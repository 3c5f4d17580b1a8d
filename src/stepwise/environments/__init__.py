"""
The `environments` module holds the runtimes acceptance tests execute against.
Currently a single Docker container per test environment.
"""
