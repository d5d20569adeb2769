import threading
import time

import pytest

from adapters.local.log_progress import LogProgressAdapter
from adapters.local.memory_checkpoint_store import InMemoryCheckpointStore
from domain.errors import ConversionError, DurationProbeError
from ports.audio import CodecPort
from ports.rate_limiter import RateLimiterPort
from ports.summarization import SummarizationPort, SummarizationTarget
from ports.transcription import TranscriptionPort, TranscriptionTarget
from use_cases.batch_transcribe import BatchTranscriptionScheduler
from use_cases.transcribe import PipelineSettings, TranscriptionPipeline

# 3.5 MB for ten minutes of audio
BYTES_PER_SECOND = 3_500_000 / 600


class FakeCodec(CodecPort):
    """Audio whose byte length is proportional to its duration."""

    def __init__(self, bytes_per_second=BYTES_PER_SECOND, converted_seconds=600.0):
        self.bytes_per_second = bytes_per_second
        self.converted_seconds = converted_seconds
        self.loaded = False
        self.calls = []
        self.fail_convert = False
        self.fail_probe = False

    def audio(self, seconds):
        return b"\x00" * int(round(seconds * self.bytes_per_second))

    def load(self):
        self.calls.append("load")
        self.loaded = True

    def is_loaded(self):
        return self.loaded

    def convert(self, data, mime_hint, sample_rate=16000):
        self.calls.append("convert")
        if self.fail_convert:
            raise ConversionError("unsupported codec")
        return self.audio(self.converted_seconds)

    def probe_duration(self, data):
        self.calls.append("probe")
        if self.fail_probe:
            raise DurationProbeError("no Duration line")
        return len(data) / self.bytes_per_second

    def cut(self, data, start, end):
        self.calls.append("cut")
        return self.audio(end - start)

    def clear(self):
        self.calls.append("clear")

    def release(self):
        self.calls.append("release")
        self.loaded = False


class FakeTranscriber(TranscriptionPort):
    def __init__(self, name="groq", delay=0.0, fail_on=()):
        self.name = name
        self.delay = delay
        self.fail_on = set(fail_on)
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def transcribe(self, audio, model, filename="segment.mp3"):
        with self._lock:
            self.calls.append(filename)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            segment_id = filename.rsplit(".", 1)[0]
            if segment_id in self.fail_on:
                raise RuntimeError(f"provider rejected {segment_id}")
            return f"text of {segment_id}"
        finally:
            with self._lock:
                self.in_flight -= 1

    def provider_name(self):
        return self.name


class FakeSummarizer(SummarizationPort):
    def __init__(self, name="groq", fail=False):
        self.name = name
        self.fail = fail
        self.calls = []

    def complete(self, system_prompt, user_text, model):
        self.calls.append((system_prompt, user_text, model))
        if self.fail:
            raise RuntimeError("rate limited")
        return f"summary of {len(user_text.split())} words"

    def provider_name(self):
        return self.name


class RecordingRateLimiter(RateLimiterPort):
    def __init__(self):
        self.cool_downs = []

    def cool_down(self, batch_number):
        self.cool_downs.append(batch_number)


@pytest.fixture
def codec():
    return FakeCodec()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def rate_limiter():
    return RecordingRateLimiter()


@pytest.fixture
def store():
    return InMemoryCheckpointStore()


@pytest.fixture
def progress():
    return LogProgressAdapter()


@pytest.fixture
def pipeline(codec, transcriber, summarizer, rate_limiter, store, progress):
    scheduler = BatchTranscriptionScheduler(
        lambda: TranscriptionTarget(provider="groq", model="whisper-large-v3", adapter=transcriber),
        rate_limiter,
        batch_size=10,
        progress=progress,
    )
    return TranscriptionPipeline(
        codec=codec,
        scheduler=scheduler,
        checkpoints=store,
        progress=progress,
        settings=PipelineSettings(max_segment_bytes=1_000_000),
        resolve_summarizer=lambda: SummarizationTarget(
            provider="groq", model="llama-3.3-70b-versatile", adapter=summarizer
        ),
    )
