"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- storage: local filesystem and S3-compatible object storage (boto3)
- video: FFmpeg/FFprobe media pipeline

These wrappers translate between external formats and our domain models.
"""
