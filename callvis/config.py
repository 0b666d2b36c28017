"""Application-wide configuration and settings.

Uses ``pydantic-settings`` so values can be overridden via environment
variables prefixed with ``CALLVIS_``.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global settings for the callvis service and CLI.

    Attributes:
        app_name: Display name of the application.
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_json: Emit JSON log lines instead of the console format.
        http_addr: ``host:port`` the control service listens on.
        graph_file: Raw call graph JSON produced by the analysis tool.
        cache_dir: Directory for rendered artifacts; empty disables caching.
        output_dir: Directory the service writes the latest artifact to.
        output_name: Base file name (without extension) of written artifacts.
        viewer_url: Location the render trigger redirects to.
        dot_binary: Name or path of the Graphviz ``dot`` executable.
        dot_timeout: Seconds before a ``dot`` invocation is treated as hung.
        skip_browser: Do not open a browser when the server starts.
    """

    app_name: str = "callvis"
    log_level: str = "INFO"
    log_json: bool = False
    http_addr: str = ":7878"

    graph_file: str = "callgraph.json"
    cache_dir: str = ""
    output_dir: str = "./static/data"
    output_name: str = "callvis_export"
    viewer_url: str = "/view"

    # Graphviz
    dot_binary: str = "dot"
    dot_timeout: float = 30.0

    skip_browser: bool = False

    model_config = {"env_prefix": "CALLVIS_", "env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
