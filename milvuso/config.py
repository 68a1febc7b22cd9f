"""Service configuration with defaults and file/environment loading."""

import dataclasses
import ipaddress
import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

ENV_PREFIX = "MILVUSO_"

_U16 = {"max": 2**16 - 1}
_U32 = {"max": 2**32 - 1}
_U64 = {"max": 2**64 - 1}

_PARSERS = {
    ".toml": lambda text: tomllib.loads(text),
    ".json": lambda text: json.loads(text),
}


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = field(default=8080, metadata=_U16)
    workers: int = field(default_factory=lambda: os.cpu_count() or 1)

    def socket_addr(self) -> tuple[str, int]:
        """Return the (ip, port) pair to bind; the host must be an IP address."""
        try:
            address = ipaddress.ip_address(self.host)
        except ValueError as exc:
            raise ValueError(f"invalid socket address {self.host}:{self.port}") from exc
        return str(address), self.port


@dataclass
class MilvusConfig:
    host: str = "localhost"
    port: int = field(default=19530, metadata=_U16)
    collection_name: str = "recommendation_vectors"
    dimension: int = 128
    index_type: str = "IVF_FLAT"
    metric_type: str = "L2"


@dataclass
class KafkaConfig:
    brokers: str = "localhost:9092"
    log_topic: str = "user_actions"
    feature_topic: str = "features"
    training_topic: str = "training_examples"
    group_id: str = "milvuso_group"
    auto_offset_reset: str = "earliest"


@dataclass
class RedisConfig:
    url: str = "redis://localhost:6379"
    pool_size: int = field(default=10, metadata=_U32)
    ttl_seconds: int = field(default=3600, metadata=_U64)


@dataclass
class PostgresConfig:
    url: str = "postgresql://localhost:5432/milvuso"
    max_connections: int = field(default=10, metadata=_U32)


@dataclass
class RecommendationConfig:
    embedding_dim: int = 128
    top_k: int = 50
    similarity_threshold: float = 0.7
    user_profile_update_interval: int = field(default=300, metadata=_U64)


@dataclass
class TrainingConfig:
    batch_size: int = 1024
    learning_rate: float = 0.001
    epochs: int = 10
    model_save_interval: int = field(default=3600, metadata=_U64)
    negative_sampling_ratio: float = 4.0


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    milvus: MilvusConfig = field(default_factory=MilvusConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    recommendation: RecommendationConfig = field(default_factory=RecommendationConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """Build a config in which every section and field must be present."""
        sections = {}
        for section in dataclasses.fields(cls):
            raw = data.get(section.name)
            if not isinstance(raw, Mapping):
                raise ValueError(f"missing section '{section.name}'")
            sections[section.name] = _build_section(section.type, section.name, raw)
        return cls(**sections)

    @classmethod
    def from_file(cls, path: str | os.PathLike) -> "Config":
        """Load a TOML or JSON file, then apply MILVUSO_<SECTION>_<FIELD> overrides."""
        source = _locate(Path(path))
        data = _PARSERS[source.suffix](source.read_text(encoding="utf-8"))
        _apply_environment(data, os.environ)
        return cls.from_dict(data)


def _locate(path: Path) -> Path:
    if path.suffix in _PARSERS and path.is_file():
        return path
    for extension in _PARSERS:
        candidate = path.with_name(path.name + extension)
        if candidate.is_file():
            return candidate
    if path.is_file():
        raise ValueError(f"unsupported configuration format: {path}")
    raise FileNotFoundError(f"configuration file not found: {path}")


def _apply_environment(data: dict[str, Any], environ: Mapping[str, str]) -> None:
    sections = {f.name: f.type for f in dataclasses.fields(Config)}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        rest = name[len(ENV_PREFIX):].lower()
        for section, section_cls in sections.items():
            if not rest.startswith(section + "_"):
                continue
            key = rest[len(section) + 1:]
            if key in {f.name for f in dataclasses.fields(section_cls)}:
                target = data.setdefault(section, {})
                if isinstance(target, dict):
                    target[key] = value


def _build_section(section_cls: type, name: str, raw: Mapping[str, Any]) -> Any:
    values = {}
    for item in dataclasses.fields(section_cls):
        where = f"{name}.{item.name}"
        if item.name not in raw:
            raise ValueError(f"missing field '{where}'")
        value = _coerce(raw[item.name], item.type, where)
        limit = item.metadata.get("max")
        if limit is not None and value > limit:
            raise ValueError(f"value out of range for {where}: {value}")
        values[item.name] = value
    return section_cls(**values)


def _coerce(value: Any, kind: type, where: str) -> Any:
    try:
        if kind is str:
            if isinstance(value, (dict, list)):
                raise TypeError
            return str(value)
        if isinstance(value, bool):
            raise TypeError
        if kind is int:
            if isinstance(value, float) and not value.is_integer():
                raise ValueError
            number = int(value.strip()) if isinstance(value, str) else int(value)
            if number < 0:
                raise ValueError
            return number
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"invalid value for {where}: {value!r}") from None