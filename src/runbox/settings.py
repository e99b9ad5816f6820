from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ---- job engine ----
    concurrency_limit: int = 4
    per_job_timeout_ms: int = 8000
    max_output_bytes: int = 200 * 1024
    workspace_root: Path = Path("temp")
    sandbox_prefix_enabled: bool = True

    # ---- toolchains ----
    cpp_compiler: str = "g++"
    java_compiler: str = "javac"
    java_runtime: str = "java"
    python_bin: str = "python3"
    node_bin: str = "node"

    # ---- http server ----
    host: str = "0.0.0.0"
    port: int = 3000
    rate_limit_window_s: float = 60.0
    rate_limit_max_requests: int = 60
    max_request_bytes: int = 1024 * 1024
    log_level: str = "INFO"

    # env prefix RUNBOX_*
    model_config = SettingsConfigDict(env_prefix="RUNBOX_", extra="ignore")

    @property
    def timeout_s(self) -> float:
        return self.per_job_timeout_ms / 1000.0


def load_settings(conf_path: str | os.PathLike | None = None) -> Settings:
    # 0) base from RUNBOX_* env
    s = Settings()

    # 1) overlay conf/runbox.yaml (or RUNBOX_CONF)
    path = conf_path or os.environ.get("RUNBOX_CONF", "conf/runbox.yaml")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    engine = data.get("engine") or {}
    toolchains = data.get("toolchains") or {}
    server = data.get("server") or {}
    if not isinstance(engine, dict):
        engine = {}
    if not isinstance(toolchains, dict):
        toolchains = {}
    if not isinstance(server, dict):
        server = {}

    # 2) merge; re-validate so YAML values get the declared types
    merged = s.model_dump()
    merged.update({k: v for k, v in engine.items() if k in merged})
    merged.update({k: v for k, v in toolchains.items() if k in merged})
    merged.update({k: v for k, v in server.items() if k in merged})
    return Settings.model_validate(merged)
