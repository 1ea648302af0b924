import logging
from typing import Optional

from app.core import config

from .base import Encoder
from .ffmpeg import FFmpegEncoder

logger = logging.getLogger("compiler.encoder")


class EncoderFactory:
    """Factory class to create encoder instances based on configuration."""

    @staticmethod
    def create(encoder_name: Optional[str] = None) -> Encoder:
        if encoder_name is None:
            encoder_name = config.VIDEO_ENCODER

        encoder_name = encoder_name.lower()

        if encoder_name == "ffmpeg":
            logger.info(
                "Using ffmpeg encoder (binary=%s, preset=%s, crf=%d, output=%dx%d@%d)",
                config.FFMPEG_BINARY, config.FFMPEG_PRESET, config.FFMPEG_CRF,
                config.OUTPUT_WIDTH, config.OUTPUT_HEIGHT, config.OUTPUT_FPS,
            )
            return FFmpegEncoder(
                binary=config.FFMPEG_BINARY,
                preset=config.FFMPEG_PRESET,
                crf=config.FFMPEG_CRF,
                probe_binary=config.FFPROBE_BINARY,
                width=config.OUTPUT_WIDTH,
                height=config.OUTPUT_HEIGHT,
                fps=config.OUTPUT_FPS,
            )

        else:
            logger.error("Unsupported video encoder requested: %s", encoder_name)
            raise ValueError(
                f"Unsupported video encoder: {encoder_name}. "
                "Supported encoders: ffmpeg"
            )
