"""FFmpegCodecAdapter — conversion, duration probing and cutting via the ffmpeg binary.

All intermediate files live in a private working directory that the
running pipeline owns. clear() empties it, release() removes it.
"""

import os
import re
import shutil
import logging
import mimetypes
import tempfile
import subprocess
from typing import Optional

from domain.errors import CodecError, ConversionError, DurationProbeError
from ports.audio import CodecPort

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r"Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)")

DEFAULT_BITRATE = "64k"


def parse_duration(log: str) -> Optional[float]:
    """Extract the stream duration in seconds from ffmpeg's log output."""
    match = DURATION_PATTERN.search(log)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


class FFmpegCodecAdapter(CodecPort):
    def __init__(
        self,
        temp_dir: Optional[str] = None,
        bitrate: str = DEFAULT_BITRATE,
        ffmpeg_bin: str = "ffmpeg",
    ):
        self._temp_dir = temp_dir
        self._bitrate = bitrate
        self._ffmpeg = ffmpeg_bin
        self._work_dir: Optional[str] = None

    def load(self) -> None:
        if self._work_dir is not None:
            return
        if shutil.which(self._ffmpeg) is None:
            raise FileNotFoundError(f"ffmpeg binary not found: {self._ffmpeg}")
        if self._temp_dir:
            os.makedirs(self._temp_dir, exist_ok=True)
        self._work_dir = tempfile.mkdtemp(prefix="codec-", dir=self._temp_dir)
        logger.info(f"FFmpeg working area ready: {self._work_dir}")

    def is_loaded(self) -> bool:
        return self._work_dir is not None

    def convert(self, data: bytes, mime_hint: str, sample_rate: int = 16000) -> bytes:
        suffix = mimetypes.guess_extension(mime_hint or "") or ".bin"
        input_path = self._write(data, suffix)
        output_path = self._reserve(".mp3")
        try:
            cmd = [self._ffmpeg, "-y", "-i", input_path, "-ar", str(sample_rate), "-ac", "1"]
            if (mime_hint or "").startswith("video/"):
                cmd += ["-map", "0:a"]
                logger.info(f"Detected video file, extracting audio track at {sample_rate}Hz mono")
            else:
                logger.info(f"Detected audio file, converting to {sample_rate}Hz mono MP3")
            cmd += ["-c:a", "libmp3lame", "-b:a", self._bitrate, output_path]

            result = subprocess.run(cmd, capture_output=True, text=True)
            if result.returncode != 0:
                logger.error(f"Error converting audio: {result.stderr}")
                raise ConversionError(f"Failed to convert audio: {_tail(result.stderr)}")
            return _read(output_path)
        finally:
            _unlink(input_path, output_path)

    def probe_duration(self, data: bytes) -> float:
        input_path = self._write(data, ".mp3")
        try:
            # ffmpeg reports the container duration on stderr while decoding to null
            result = subprocess.run(
                [self._ffmpeg, "-i", input_path, "-f", "null", "-"],
                capture_output=True, text=True,
            )
            duration = parse_duration(result.stderr)
            if duration is None:
                raise DurationProbeError(f"Could not determine duration: {_tail(result.stderr)}")
            logger.debug(f"Probed duration: {duration:.2f}s")
            return duration
        finally:
            _unlink(input_path)

    def cut(self, data: bytes, start: float, end: float) -> bytes:
        input_path = self._write(data, ".mp3")
        output_path = self._reserve(".mp3")
        try:
            cmd = [
                self._ffmpeg, "-y",
                "-i", input_path,
                "-ss", str(start),
                "-to", str(end),
                "-c", "copy",
                output_path,
            ]
            result = subprocess.run(cmd, capture_output=True, text=True)
            if result.returncode != 0:
                logger.error(f"Error cutting audio {start:.2f}-{end:.2f}s: {result.stderr}")
                raise CodecError(f"Failed to cut audio: {_tail(result.stderr)}")
            return _read(output_path)
        finally:
            _unlink(input_path, output_path)

    def clear(self) -> None:
        if self._work_dir is None:
            return
        for name in os.listdir(self._work_dir):
            path = os.path.join(self._work_dir, name)
            if os.path.isdir(path):
                shutil.rmtree(path)
            else:
                os.unlink(path)
        logger.info("FFmpeg working area cleared")

    def release(self) -> None:
        if self._work_dir is None:
            return
        shutil.rmtree(self._work_dir, ignore_errors=True)
        logger.info(f"FFmpeg working area removed: {self._work_dir}")
        self._work_dir = None

    def _write(self, data: bytes, suffix: str) -> str:
        path = self._reserve(suffix)
        with open(path, "wb") as f:
            f.write(data)
        return path

    def _reserve(self, suffix: str) -> str:
        self.load()
        temp_file = tempfile.NamedTemporaryFile(suffix=suffix, dir=self._work_dir, delete=False)
        temp_file.close()
        return temp_file.name


def _read(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _unlink(*paths: str) -> None:
    for path in paths:
        if os.path.exists(path):
            os.unlink(path)


def _tail(stderr: str, lines: int = 5) -> str:
    return "\n".join((stderr or "").strip().splitlines()[-lines:])
