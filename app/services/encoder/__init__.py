from .base import Encoder
from .factory import EncoderFactory
from .ffmpeg import FFmpegEncoder, build_manifest

__all__ = ["Encoder", "EncoderFactory", "FFmpegEncoder", "build_manifest"]
