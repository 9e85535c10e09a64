"""
ChronoFrame storage core.

Pluggable binary-object storage for a photo/video gallery:
- core: framework-agnostic models, encryption primitives, retry framework
- infrastructure: storage providers, storage manager, video pipeline
- api: FastAPI dependencies and health routes
- config: application and runtime encryption settings
"""

__version__ = "0.1.0"
