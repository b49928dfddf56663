"""
CID Upload Gateway - stores uploads in Filebase and returns their IPFS CIDs.

This package contains the complete application:
- core: Framework-agnostic upload logic (key derivation, CID polling)
- infrastructure: External service integrations (object storage)
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
