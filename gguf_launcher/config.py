"""
Configuration loading for the GGUF launcher.

Settings are read once from a ``KEY=VALUE`` file (config.env), validated
against a typed schema and handed to every component as an immutable
object. A missing file is not an error: the defaults below are used.

Recognised keys mirror config.env.example, for example:
    HF_REPO: HuggingFace repository holding the GGUF files
    MODEL_NAME / MODEL_QUANT: Model base name and quantization label
    MODEL_PATH: Resolved model path (written after a successful download)
    USE_MMAP / USE_MLOCK: Memory mapping and memory locking toggles
    KV_CACHE_TYPE_K / KV_CACHE_TYPE_V: KV cache precision for the server
    DOWNLOAD_MAX_RETRIES / DOWNLOAD_RETRY_DELAY: Download retry policy
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import dotenv_values, set_key
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gguf_launcher.errors import ConfigError
from gguf_launcher.quants import is_known_quant

DEFAULT_CONFIG_FILE = Path("config.env")
CONFIG_TEMPLATE_FILE = Path("config.env.example")

KV_CACHE_TYPES = ("f32", "f16", "bf16", "q8_0", "q4_0", "q4_1", "iq4_nl", "q5_0", "q5_1")

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant. Be concise and accurate."


class Settings(BaseModel):
    """Typed, immutable view of config.env."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # Model source
    hf_repo: str = Field("unsloth/Llama-4-Scout-17B-16E-Instruct-GGUF", alias="HF_REPO")
    model_name: str = Field("Llama-4-Scout-17B-16E-Instruct", alias="MODEL_NAME")
    model_quant: str = Field("Q8_0", alias="MODEL_QUANT")
    model_file: Optional[str] = Field(None, alias="MODEL_FILE")
    model_path: Optional[Path] = Field(None, alias="MODEL_PATH")
    models_dir: Path = Field(Path("models"), alias="MODELS_DIR")
    hf_token: Optional[str] = Field(None, alias="HF_TOKEN")

    # Memory
    ram_limit: str = Field("16G", alias="RAM_LIMIT")
    use_mmap: bool = Field(True, alias="USE_MMAP")
    use_mlock: bool = Field(False, alias="USE_MLOCK")
    kv_cache_type_k: Optional[str] = Field("q8_0", alias="KV_CACHE_TYPE_K")
    kv_cache_type_v: Optional[str] = Field("q8_0", alias="KV_CACHE_TYPE_V")

    # Inference
    context_size: int = Field(4096, ge=1, alias="CONTEXT_SIZE")
    max_tokens: int = Field(2048, alias="MAX_TOKENS")
    temperature: float = Field(0.7, ge=0.0, alias="TEMPERATURE")
    threads: Optional[int] = Field(None, ge=1, alias="THREADS")
    batch_size: int = Field(512, ge=1, alias="BATCH_SIZE")
    gpu_layers: int = Field(999, ge=0, alias="GPU_LAYERS")
    flash_attention: bool = Field(True, alias="FLASH_ATTENTION")
    system_prompt: str = Field(DEFAULT_SYSTEM_PROMPT, alias="SYSTEM_PROMPT")
    repeat_penalty: float = Field(1.1, alias="REPEAT_PENALTY")
    top_k: int = Field(40, ge=0, alias="TOP_K")
    top_p: float = Field(0.95, ge=0.0, le=1.0, alias="TOP_P")
    chat_template: str = Field("llama3", alias="CHAT_TEMPLATE")

    # Server
    server_host: str = Field("127.0.0.1", alias="SERVER_HOST")
    server_port: int = Field(8080, ge=1, le=65535, alias="SERVER_PORT")
    server_verbose: bool = Field(False, alias="SERVER_VERBOSE")

    # Download
    download_timeout: float = Field(60.0, gt=0, alias="DOWNLOAD_TIMEOUT")
    download_max_retries: int = Field(5, ge=1, alias="DOWNLOAD_MAX_RETRIES")
    download_retry_delay: float = Field(10.0, ge=0, alias="DOWNLOAD_RETRY_DELAY")

    @field_validator(
        "model_file",
        "model_path",
        "hf_token",
        "kv_cache_type_k",
        "kv_cache_type_v",
        mode="before",
    )
    @classmethod
    def _empty_as_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("threads", mode="before")
    @classmethod
    def _auto_threads(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and v.strip().lower() in ("", "auto")):
            return None
        return v

    @field_validator("model_quant")
    @classmethod
    def _validate_quant(cls, v: str) -> str:
        label = v.strip().upper()
        if not is_known_quant(label):
            raise ValueError(f"unknown quantization label '{v}'")
        return label

    @field_validator("kv_cache_type_k", "kv_cache_type_v")
    @classmethod
    def _validate_cache_type(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in KV_CACHE_TYPES:
            raise ValueError(f"must be one of: {', '.join(KV_CACHE_TYPES)}")
        return v

    @field_validator("hf_repo", "model_name")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("cannot be empty")
        return v.strip()

    @property
    def threads_label(self) -> str:
        return "auto" if self.threads is None else str(self.threads)

    def with_overrides(self, **changes: Any) -> "Settings":
        """
        Return a copy with some fields replaced.

        Values are validated the same way as values from the file. None
        values are skipped so unset CLI options leave settings untouched.

        Args:
            **changes: Field names (not aliases) mapped to new values

        Returns:
            A new Settings instance

        Raises:
            ConfigError: If an override is invalid
        """
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            return self
        data = self.model_dump()
        data.update(changes)
        return _validate(data)


def _validate(values: Dict[str, Any]) -> Settings:
    try:
        return Settings.model_validate(values)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            key = ".".join(str(part) for part in err["loc"]) or "config"
            problems.append(f"{key}: {err['msg']}")
        raise ConfigError(problems) from e


def read_config_file(path: Union[str, Path, None] = None) -> Dict[str, str]:
    """
    Read raw KEY=VALUE pairs from a config file.

    Args:
        path: Path to the config file (default: ./config.env)

    Returns:
        Mapping of keys to string values, empty if the file does not exist
    """
    path = Path(path) if path else DEFAULT_CONFIG_FILE
    if not path.is_file():
        return {}
    return {k: v for k, v in dotenv_values(path).items() if v is not None}


def load_settings(path: Union[str, Path, None] = None, **overrides: Any) -> Settings:
    """
    Load and validate settings.

    Args:
        path: Path to the config file (default: ./config.env). A missing
            file silently yields the defaults.
        **overrides: Raw KEY=VALUE overrides applied on top of the file

    Returns:
        Validated Settings

    Raises:
        ConfigError: If any value fails validation. All problems are
            reported together.
    """
    values: Dict[str, Any] = dict(read_config_file(path))
    values.update(overrides)
    return _validate(values)


def update_config_value(path: Union[str, Path, None], key: str, value: str) -> Path:
    """
    Persist a single KEY=VALUE pair, replacing any existing value.

    Args:
        path: Config file to update (created if missing)
        key: Config key (e.g. "MODEL_PATH")
        value: New value

    Returns:
        Path of the updated file
    """
    path = Path(path) if path else DEFAULT_CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)
    set_key(str(path), key, value, quote_mode="never")
    return path
