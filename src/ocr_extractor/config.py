"""Configuration management using pydantic-settings."""

import tomllib
from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .concurrency import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_DELAY,
)
from .domain.callout import DEFAULT_CALLOUT_TITLE

DEFAULT_VAULT = "~/Documents/Notes"
DEFAULT_MISTRAL_URL = "https://api.mistral.ai"
DEFAULT_MISTRAL_MODEL = "mistral-ocr-latest"
DEFAULT_COMMAND_TIMEOUT = 120.0  # seconds
CONFIG_PATH = Path("~/.config/ocr-extractor/config.toml").expanduser()


class OcrBackend(str, Enum):
    """Available OCR backends."""

    TESSERACT = "tesseract"
    MISTRAL = "mistral"
    CUSTOM_COMMAND = "custom-command"


class VaultConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OCR_EXTRACTOR_VAULT_")

    path: Path = Path(DEFAULT_VAULT)

    @field_validator("path", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser()


class TesseractConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TESSERACT_")

    language: str = "eng"


class MistralConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MISTRAL_")

    api_key: str = ""
    model: str = DEFAULT_MISTRAL_MODEL
    base_url: str = DEFAULT_MISTRAL_URL


class CustomCommandConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OCR_EXTRACTOR_CUSTOM_COMMAND_")

    command: str = ""
    convert_pdfs: bool = False
    timeout: float = DEFAULT_COMMAND_TIMEOUT


class OcrConfig(BaseSettings):
    """OCR backend configuration."""

    model_config = SettingsConfigDict(env_prefix="OCR_EXTRACTOR_OCR_")

    backend: OcrBackend = OcrBackend.TESSERACT
    use_embedded_pdf_text: bool = False
    retry_count: int = Field(default=DEFAULT_RETRY_COUNT, ge=0)
    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)
    tesseract: TesseractConfig = TesseractConfig()
    mistral: MistralConfig = MistralConfig()
    custom_command: CustomCommandConfig = CustomCommandConfig()


class ExtractionConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OCR_EXTRACTOR_EXTRACTION_")

    batch_size: int = DEFAULT_BATCH_SIZE
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    callout_title: str = DEFAULT_CALLOUT_TITLE
    debug_logging: bool = False

    @field_validator("batch_size")
    @classmethod
    def positive_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("batch_size must be at least 1")
        return v


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OCR_EXTRACTOR_")

    vault: VaultConfig = VaultConfig()
    ocr: OcrConfig = OcrConfig()
    extraction: ExtractionConfig = ExtractionConfig()


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from TOML file, falling back to defaults."""
    path = config_path or CONFIG_PATH

    data: dict = {}
    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)

    # Build sections explicitly so their env vars still apply
    ocr_data = dict(data.get("ocr", {}))
    ocr = OcrConfig(
        tesseract=TesseractConfig(**ocr_data.pop("tesseract", {})),
        mistral=MistralConfig(**ocr_data.pop("mistral", {})),
        custom_command=CustomCommandConfig(**ocr_data.pop("custom_command", {})),
        **ocr_data,
    )
    return Settings(
        vault=VaultConfig(**data.get("vault", {})),
        ocr=ocr,
        extraction=ExtractionConfig(**data.get("extraction", {})),
    )
