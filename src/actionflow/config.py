import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

DEFAULT_API_URL = "http://127.0.0.1:11434"
DEFAULT_HISTORY_LIMIT = 20

ENV_HOME = "ACTIONFLOW_HOME"
ENV_MODEL = "LLM_MODEL_NAME"
ENV_API_URL = "LLM_API_URL"
ENV_API_KEY = "LLM_API_KEY"


@dataclass(frozen=True)
class Paths:
    base_dir: Path

    @property
    def data_dir(self) -> Path:
        return self.base_dir

    @property
    def state_path(self) -> Path:
        return self.data_dir / "tasks.json"

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"


@dataclass(frozen=True)
class LLMSettings:
    model: str | None = None
    base_url: str = DEFAULT_API_URL
    api_key: str | None = None
    timeout_s: float = 120.0


@dataclass(frozen=True)
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = 9002


@dataclass(frozen=True)
class AppConfig:
    llm: LLMSettings = LLMSettings()
    server: ServerSettings = ServerSettings()
    history_limit: int = DEFAULT_HISTORY_LIMIT


def load_paths(base_dir: Path | None = None, environ: Mapping[str, str] | None = None) -> Paths:
    env = os.environ if environ is None else environ
    if base_dir is None and env.get(ENV_HOME):
        base_dir = Path(env[ENV_HOME]).expanduser()
    resolved = base_dir or (Path.home() / ".actionflow")
    return Paths(base_dir=resolved)


def load_config(path: Path) -> AppConfig:
    if not path.exists():
        return AppConfig()
    payload = json.loads(path.read_text())
    llm = payload.get("llm", {})
    server = payload.get("server", {})
    return AppConfig(
        llm=LLMSettings(
            model=llm.get("model") or None,
            base_url=llm.get("base_url") or DEFAULT_API_URL,
            api_key=llm.get("api_key") or None,
            timeout_s=float(llm.get("timeout_s", 120.0)),
        ),
        server=ServerSettings(
            host=str(server.get("host", "127.0.0.1")),
            port=int(server.get("port", 9002)),
        ),
        history_limit=int(payload.get("history_limit", DEFAULT_HISTORY_LIMIT)),
    )


def save_config(path: Path, config: AppConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "llm": {
            "model": config.llm.model,
            "base_url": config.llm.base_url,
            "api_key": config.llm.api_key,
            "timeout_s": config.llm.timeout_s,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
        "history_limit": config.history_limit,
    }
    path.write_text(json.dumps(payload, indent=2))


def apply_environment(config: AppConfig, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Environment variables win over the config file."""
    env = os.environ if environ is None else environ
    llm = config.llm
    if env.get(ENV_MODEL):
        llm = replace(llm, model=env[ENV_MODEL])
    if env.get(ENV_API_URL):
        llm = replace(llm, base_url=env[ENV_API_URL])
    if env.get(ENV_API_KEY):
        llm = replace(llm, api_key=env[ENV_API_KEY])
    return replace(config, llm=llm)


def resolve_config(paths: Paths, environ: Mapping[str, str] | None = None) -> AppConfig:
    return apply_environment(load_config(paths.config_path), environ)
