from __future__ import annotations

import uvicorn

from .api import create_app
from .logging import setup_logging
from .settings import load_settings


def main() -> None:
    s = load_settings()
    log = setup_logging(s.log_level)
    app = create_app(s)
    log.info(
        "server.starting",
        host=s.host,
        port=s.port,
        workspace_root=str(app.state.service.workspaces.root),
        sandbox_prefix=app.state.service.prefix.active,
    )
    uvicorn.run(app, host=s.host, port=s.port, log_config=None)


if __name__ == "__main__":
    main()
