import os
import logging
import threading
from typing import Dict, Optional, Any
from pathlib import Path

from dotenv import load_dotenv

from domain.errors import ProviderConfigurationError
from ports.summarization import SummarizationPort, SummarizationTarget
from ports.transcription import TranscriptionPort, TranscriptionTarget

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8001
DEFAULT_MAX_SEGMENT_MB = 25
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_BATCH_SIZE = 10
DEFAULT_BATCH_DELAY = 60.0
DEFAULT_TEMP_DIR = "/tmp/stitchscribe"

PROVIDERS = ("groq", "openai")
DEFAULT_TRANSCRIPTION_MODELS = {"groq": "whisper-large-v3", "openai": "whisper-1"}
DEFAULT_CHAT_MODELS = {"groq": "llama-3.3-70b-versatile", "openai": "chatgpt-4o-latest"}


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self.host = os.environ.get("HOST", DEFAULT_HOST)
        self.port = int(os.environ.get("PORT", DEFAULT_PORT))
        self.debug = os.environ.get("DEBUG", "0") == "1"
        self.temp_dir = os.environ.get("TEMP_DIR", DEFAULT_TEMP_DIR)
        self.checkpoint_dir = os.environ.get("CHECKPOINT_DIR", os.path.join(self.temp_dir, "checkpoints"))
        self.infra = os.environ.get("INFRA", "local").lower()

        # Audio / splitting
        self.max_segment_mb = float(os.environ.get("MAX_SEGMENT_MB", DEFAULT_MAX_SEGMENT_MB))
        self.sample_rate = int(os.environ.get("SAMPLE_RATE", DEFAULT_SAMPLE_RATE))
        self.audio_bitrate = os.environ.get("AUDIO_BITRATE", "64k")
        self.boundary_overlap = float(os.environ.get("BOUNDARY_OVERLAP_SECONDS", "3"))
        self.max_split_depth = int(os.environ.get("MAX_SPLIT_DEPTH", "12"))
        self.allow_unsplit_fallback = _env_bool("ALLOW_UNSPLIT_FALLBACK")

        # Scheduling
        self.batch_size = int(os.environ.get("BATCH_SIZE", DEFAULT_BATCH_SIZE))
        self.batch_delay = float(os.environ.get("BATCH_DELAY_SECONDS", DEFAULT_BATCH_DELAY))

        # Stitching
        self.overlap_window = int(os.environ.get("OVERLAP_WINDOW_WORDS", "10"))
        self.min_overlap_words = int(os.environ.get("MIN_OVERLAP_WORDS", "5"))
        self.max_overlap_words = int(os.environ.get("MAX_OVERLAP_WORDS", "20"))
        self.similarity_threshold = float(os.environ.get("SIMILARITY_THRESHOLD", "0.8"))

        # Providers. Selection is live: it can change while a run is in flight.
        self._lock = threading.Lock()
        self._api_keys = {
            "groq": os.environ.get("GROQ_API_KEY") or None,
            "openai": os.environ.get("OPENAI_API_KEY") or None,
        }
        self._models = {
            "groq": os.environ.get("GROQ_MODEL", DEFAULT_TRANSCRIPTION_MODELS["groq"]),
            "openai": os.environ.get("OPENAI_MODEL", DEFAULT_TRANSCRIPTION_MODELS["openai"]),
        }
        self._chat_models = {
            "groq": os.environ.get("GROQ_CHAT_MODEL", DEFAULT_CHAT_MODELS["groq"]),
            "openai": os.environ.get("OPENAI_CHAT_MODEL", DEFAULT_CHAT_MODELS["openai"]),
        }
        self._provider = self._validate_provider(os.environ.get("TRANSCRIPTION_PROVIDER", "groq").lower())
        self._transcription_adapters: Dict[str, TranscriptionPort] = {}
        self._summarization_adapters: Dict[str, SummarizationPort] = {}

        Path(self.temp_dir).mkdir(parents=True, exist_ok=True)

    def reload(self) -> None:
        """Re-read the environment. Drops cached provider clients."""
        self._initialize()

    @property
    def max_segment_bytes(self) -> int:
        return int(self.max_segment_mb * 1024 * 1024)

    @property
    def provider(self) -> str:
        with self._lock:
            return self._provider

    def transcription_model(self, provider: Optional[str] = None) -> str:
        with self._lock:
            return self._models[provider or self._provider]

    def chat_model(self, provider: Optional[str] = None) -> str:
        with self._lock:
            return self._chat_models[provider or self._provider]

    def has_api_key(self, provider: str) -> bool:
        with self._lock:
            return bool(self._api_keys.get(provider))

    def set_provider(self, provider: str, model: Optional[str] = None, chat_model: Optional[str] = None) -> None:
        """Switch the live provider. In-flight segment calls keep their provider."""
        provider = self._validate_provider(provider.lower())
        with self._lock:
            self._provider = provider
            if model:
                self._models[provider] = model
            if chat_model:
                self._chat_models[provider] = chat_model
        logger.info(f"Switched API provider to {provider} (model={self.transcription_model(provider)})")

    def set_api_key(self, provider: str, api_key: str) -> None:
        provider = self._validate_provider(provider.lower())
        with self._lock:
            self._api_keys[provider] = api_key or None
            self._transcription_adapters.pop(provider, None)
            self._summarization_adapters.pop(provider, None)
        logger.info(f"Updated {provider} API key")

    def resolve_transcription_target(self) -> TranscriptionTarget:
        """Snapshot of provider, model and adapter, taken at call time."""
        with self._lock:
            provider = self._provider
            model = self._models[provider]
            adapter = self._transcription_adapters.get(provider)
            if adapter is None:
                adapter = create_transcription_adapter(provider, self._api_keys[provider])
                self._transcription_adapters[provider] = adapter
        return TranscriptionTarget(provider=provider, model=model, adapter=adapter)

    def resolve_summarization_target(self) -> SummarizationTarget:
        with self._lock:
            provider = self._provider
            model = self._chat_models[provider]
            adapter = self._summarization_adapters.get(provider)
            if adapter is None:
                adapter = create_summarization_adapter(provider, self._api_keys[provider])
                self._summarization_adapters[provider] = adapter
        return SummarizationTarget(provider=provider, model=model, adapter=adapter)

    def pipeline_settings(self):
        from use_cases.transcribe import PipelineSettings
        return PipelineSettings(
            max_segment_bytes=self.max_segment_bytes,
            sample_rate=self.sample_rate,
            boundary_overlap=self.boundary_overlap,
            max_split_depth=self.max_split_depth,
            allow_unsplit_fallback=self.allow_unsplit_fallback,
            overlap_window=self.overlap_window,
            min_overlap_words=self.min_overlap_words,
            max_overlap_words=self.max_overlap_words,
            similarity_threshold=self.similarity_threshold,
        )

    @staticmethod
    def _validate_provider(provider: str) -> str:
        if provider not in PROVIDERS:
            raise ProviderConfigurationError(
                f"Unknown provider: {provider!r}. Valid options: {', '.join(PROVIDERS)}"
            )
        return provider

    def as_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "infra": self.infra,
            "provider": self.provider,
            "transcription_model": self.transcription_model(),
            "chat_model": self.chat_model(),
            "has_groq_key": self.has_api_key("groq"),
            "has_openai_key": self.has_api_key("openai"),
            "max_segment_bytes": self.max_segment_bytes,
            "sample_rate": self.sample_rate,
            "batch_size": self.batch_size,
            "batch_delay": self.batch_delay,
            "boundary_overlap": self.boundary_overlap,
            "similarity_threshold": self.similarity_threshold,
        }


config = Config()


def get_config() -> Config:
    return config


def create_transcription_adapter(provider: str, api_key: Optional[str]) -> TranscriptionPort:
    """Create the speech-to-text adapter for ``provider``.

    Uses lazy imports so the SDK of an unused provider is never loaded.
    """
    if provider == "groq":
        from adapters.groq import GroqTranscriptionAdapter
        return GroqTranscriptionAdapter(api_key=api_key)
    if provider == "openai":
        from adapters.openai import OpenAITranscriptionAdapter
        return OpenAITranscriptionAdapter(api_key=api_key)
    raise ProviderConfigurationError(f"Unknown provider: {provider!r}. Valid options: {', '.join(PROVIDERS)}")


def create_summarization_adapter(provider: str, api_key: Optional[str]) -> SummarizationPort:
    if provider == "groq":
        from adapters.groq import GroqSummarizationAdapter
        return GroqSummarizationAdapter(api_key=api_key)
    if provider == "openai":
        from adapters.openai import OpenAISummarizationAdapter
        return OpenAISummarizationAdapter(api_key=api_key)
    raise ProviderConfigurationError(f"Unknown provider: {provider!r}. Valid options: {', '.join(PROVIDERS)}")


def create_codec_adapter(cfg: Config):
    """Create the codec adapter (always FFmpeg)."""
    from adapters.ffmpeg.audio import FFmpegCodecAdapter
    return FFmpegCodecAdapter(temp_dir=os.path.join(cfg.temp_dir, "work"), bitrate=cfg.audio_bitrate)


def create_infra_adapters(cfg: Config):
    """Create infrastructure adapters based on INFRA env var."""
    from adapters.local.fixed_delay_rate_limiter import FixedDelayRateLimiter
    from adapters.local.log_progress import LogProgressAdapter

    infra = cfg.infra

    if infra == "local":
        from adapters.local.json_checkpoint_store import JsonCheckpointStore
        checkpoints = JsonCheckpointStore(cfg.checkpoint_dir)
    elif infra == "memory":
        from adapters.local.memory_checkpoint_store import InMemoryCheckpointStore
        checkpoints = InMemoryCheckpointStore()
    else:
        raise ValueError(f"Unknown INFRA: {infra!r}. Valid options: local, memory")

    adapters = {
        "rate_limiter": FixedDelayRateLimiter(cfg.batch_delay),
        "progress": LogProgressAdapter(),
        "checkpoints": checkpoints,
    }
    logger.info(f"Infra adapters: {infra} -> {', '.join(type(v).__name__ for v in adapters.values())}")
    return adapters


def create_pipeline(cfg: Config):
    """Wire the transcription pipeline from configuration."""
    from use_cases.batch_transcribe import BatchTranscriptionScheduler
    from use_cases.transcribe import TranscriptionPipeline

    infra = create_infra_adapters(cfg)
    scheduler = BatchTranscriptionScheduler(
        cfg.resolve_transcription_target,
        infra["rate_limiter"],
        batch_size=cfg.batch_size,
        progress=infra["progress"],
    )
    pipeline = TranscriptionPipeline(
        codec=create_codec_adapter(cfg),
        scheduler=scheduler,
        checkpoints=infra["checkpoints"],
        progress=infra["progress"],
        settings=cfg.pipeline_settings(),
        resolve_summarizer=cfg.resolve_summarization_target,
    )
    return pipeline, infra
