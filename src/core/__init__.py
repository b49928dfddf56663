"""
Core upload logic.

This module is framework-agnostic - it doesn't import FastAPI or boto3.
Storage is reached through small protocols, so the poller and the upload
service can be tested against in-memory doubles.
"""
