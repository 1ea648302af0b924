import logging
import os
import shutil
import subprocess
import threading
from typing import Optional, Sequence, Type

from app.core.exceptions import CompilationError, ConcatError, ExtractError, JobCancelled

from .base import Encoder

logger = logging.getLogger("compiler.encoder")

# How often a running ffmpeg process is checked for cancellation
POLL_INTERVAL_SECONDS = 0.5
STDERR_TAIL_CHARS = 2000

AUDIO_SAMPLE_RATE = 48000
AUDIO_CHANNELS = 2


def build_manifest(clip_paths: Sequence[str]) -> str:
    """Concat demuxer input listing each clip in order."""
    lines = []
    for path in clip_paths:
        # Escape single quotes in filenames for ffmpeg concat demuxer
        safe_path = path.replace("'", "'\\''")
        lines.append(f"file '{safe_path}'")
    return "\n".join(lines) + "\n"


def _seconds_arg(value: float) -> str:
    return f"{value:.3f}"


def _tail(text: str) -> str:
    text = text.strip()
    return text[-STDERR_TAIL_CHARS:] if len(text) > STDERR_TAIL_CHARS else text


class FFmpegEncoder(Encoder):
    """Runs ffmpeg as a subprocess for clip extraction and concatenation.

    The extract pass normalizes every clip to one baseline: H.264 yuv420p at
    a fixed size and frame rate, with 48 kHz stereo AAC. Sources without an
    audio track get a silent one. Clips cut from differently encoded sources
    can then always be joined, and the concat pass re-encodes once more.
    """

    def __init__(
        self,
        binary: str = "ffmpeg",
        preset: str = "ultrafast",
        crf: int = 23,
        probe_binary: str = "ffprobe",
        width: int = 1280,
        height: int = 720,
        fps: int = 30,
    ):
        self.binary = binary
        self.preset = preset
        self.crf = crf
        self.probe_binary = probe_binary
        self.width = width
        self.height = height
        self.fps = fps

    def _encode_args(self) -> list[str]:
        return [
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            "-r", str(self.fps),
            "-c:a", "aac",
            "-ar", str(AUDIO_SAMPLE_RATE),
            "-ac", str(AUDIO_CHANNELS),
            "-movflags", "+faststart",
        ]

    def _video_filter(self) -> str:
        # Letterbox into the target frame, keeping the source aspect ratio
        w, h = self.width, self.height
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,setsar=1"
        )

    def probe_command(self, source_path: str) -> list[str]:
        return [
            self.probe_binary,
            "-v", "error",
            "-select_streams", "a",
            "-show_entries", "stream=codec_type",
            "-of", "csv=p=0",
            source_path,
        ]

    def extract_command(
        self,
        source_path: str,
        start: float,
        duration: float,
        output_path: str,
        has_audio: bool = True,
    ) -> list[str]:
        cmd = [
            self.binary,
            "-ss", _seconds_arg(start),
            "-i", source_path,
        ]
        if has_audio:
            audio_map = "0:a:0"
        else:
            cmd += ["-f", "lavfi", "-i", f"anullsrc=channel_layout=stereo:sample_rate={AUDIO_SAMPLE_RATE}"]
            audio_map = "1:a:0"
        cmd += [
            "-t", _seconds_arg(duration),
            "-map", "0:v:0",
            "-map", audio_map,
            "-vf", self._video_filter(),
            *self._encode_args(),
        ]
        if not has_audio:
            cmd.append("-shortest")
        return cmd + [output_path, "-y"]

    def concat_command(self, manifest_path: str, output_path: str) -> list[str]:
        return [
            self.binary,
            "-f", "concat",
            "-safe", "0",
            "-i", manifest_path,
            *self._encode_args(),
            output_path,
            "-y",
        ]

    def has_audio(self, source_path: str, cancel: Optional[threading.Event] = None) -> bool:
        """True when ``source_path`` carries at least one audio stream."""
        output = self._run(self.probe_command(source_path), ExtractError, cancel)
        return "audio" in output

    def extract(
        self,
        source_path: str,
        start: float,
        duration: float,
        output_path: str,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        if duration <= 0:
            raise ExtractError(f"Clip duration must be positive, got {duration}s")

        has_audio = self.has_audio(source_path, cancel)
        if not has_audio:
            logger.info("%s has no audio track; adding silence", os.path.basename(source_path))
        cmd = self.extract_command(source_path, start, duration, output_path, has_audio=has_audio)
        self._run(cmd, ExtractError, cancel)
        self._check_output(output_path, ExtractError)
        return output_path

    def concat(
        self,
        clip_paths: Sequence[str],
        manifest_path: str,
        output_path: str,
        cancel: Optional[threading.Event] = None,
    ) -> str:
        if not clip_paths:
            raise ConcatError("No clips to concatenate")

        manifest = build_manifest(clip_paths)
        with open(manifest_path, "w") as f:
            f.write(manifest)
        logger.debug("Concat file contents:\n%s", manifest)

        cmd = self.concat_command(manifest_path, output_path)
        self._run(cmd, ConcatError, cancel)
        self._check_output(output_path, ConcatError)
        return output_path

    def is_available(self) -> bool:
        return all(shutil.which(program) is not None for program in (self.binary, self.probe_binary))

    def _run(
        self,
        cmd: list[str],
        error_cls: Type[CompilationError],
        cancel: Optional[threading.Event] = None,
    ) -> str:
        """Run ``cmd`` to completion and return its stdout."""
        program = cmd[0]
        logger.debug("Running: %s", " ".join(cmd))
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as exc:
            raise error_cls(f"Unable to start {program}: {exc}") from exc

        while True:
            try:
                stdout, stderr = proc.communicate(timeout=POLL_INTERVAL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    proc.kill()
                    proc.communicate()
                    raise JobCancelled(f"{program} was killed after the job was cancelled")

        if proc.returncode != 0:
            diagnostic = _tail(stderr.decode(errors="replace")) if stderr else ""
            raise error_cls(f"{program} exited with code {proc.returncode}: {diagnostic}")
        return stdout.decode(errors="replace") if stdout else ""

    @staticmethod
    def _check_output(output_path: str, error_cls: Type[CompilationError]) -> None:
        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise error_cls(f"ffmpeg produced no output at {output_path}")
        logger.info(
            "Created %s: %.2f MB",
            os.path.basename(output_path),
            os.path.getsize(output_path) / 1024 / 1024,
        )
