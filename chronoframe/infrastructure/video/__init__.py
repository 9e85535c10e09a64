"""
Video processing infrastructure.

Server-side metadata extraction and thumbnail generation for stored
videos, driven by FFmpeg/FFprobe.
"""

from .processor import (
    ProcessedVideo,
    VideoMetadata,
    VideoProcessor,
    is_video_file,
    parse_frame_rate,
    parse_metadata_json,
    thumbnail_timestamp,
)

__all__ = [
    "VideoProcessor",
    "VideoMetadata",
    "ProcessedVideo",
    "is_video_file",
    "parse_frame_rate",
    "parse_metadata_json",
    "thumbnail_timestamp",
]
