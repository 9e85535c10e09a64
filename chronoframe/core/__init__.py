"""
Core storage logic.

This module is framework-agnostic - it doesn't import FastAPI, boto3,
or any infrastructure concerns. Encryption primitives, the retry
framework and the storage data model can be tested in isolation.
"""
