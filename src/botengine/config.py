import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .embedding import GEMINI_EMBEDDING_MODEL, RATE_LIMIT_DELAY_SEC
from .llm import GEMINI_MODEL, GROQ_MODEL
from .retrieval import FIRST_MATCH


def load_config(path: str) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()
    with config_path.open("r", encoding="utf-8") as f:
        if suffix == ".json":
            return json.load(f) or {}
        if suffix in {".yml", ".yaml"}:
            return yaml.safe_load(f) or {}
    raise ValueError(f"Unsupported config format: {config_path.suffix}")


@dataclass
class EngineSettings:
    gemini_api_key: str = ""
    groq_api_key: str = ""
    gemini_model: str = GEMINI_MODEL
    groq_model: str = GROQ_MODEL
    local_llm_model: str = ""
    local_llm_quantization: str = "int4"
    # provider names: gemini | groq | local | none
    primary_provider: str = "gemini"
    secondary_provider: str = "groq"
    # gemini | sentence-transformers | none
    embedding_backend: str = "gemini"
    embedding_model: str = GEMINI_EMBEDDING_MODEL
    embed_rate_limit_delay_sec: float = RATE_LIMIT_DELAY_SEC
    chroma_path: str = ""
    chroma_host: str = ""
    chroma_port: int = 8000
    provider_timeout_sec: float = 30.0
    lexical_ranking: str = FIRST_MATCH
    conversation_db: str = ""
    unrecognized_db: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, overrides: Optional[Dict[str, Any]] = None, dotenv: bool = True) -> "EngineSettings":
        """Environment (and ``.env``) first, then ``overrides`` such as a config file's ``engine`` section."""
        if dotenv:
            load_dotenv()
        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = os.getenv(f.name.upper())
            if raw is not None and raw != "":
                values[f.name] = raw
        for key, value in (overrides or {}).items():
            if key in {f.name for f in fields(cls)}:
                values[key] = value
        return cls(**{k: _coerce(cls.__dataclass_fields__[k].default, v) for k, v in values.items()})

    @classmethod
    def from_file(cls, path: Optional[str]) -> "EngineSettings":
        cfg = load_config(path) if path else {}
        return cls.from_env(cfg.get("engine", {}))

    @property
    def chroma_configured(self) -> bool:
        return bool(self.chroma_path or self.chroma_host)


def _coerce(default: Any, value: Any) -> Any:
    if isinstance(default, bool):
        return value if isinstance(value, bool) else str(value).lower() in {"1", "true", "yes"}
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return str(value)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
