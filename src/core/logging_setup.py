"""Configuración de logging.

Consola con `rich.logging.RichHandler` (stderr, para no ensuciar las tablas de
la CLI) y, si `log_file` está configurado, un archivo rotativo.
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from core.config import AppSettings

_HANDLER_NAME = "stockdocs"


def configure_logging(settings: AppSettings | None = None, *, level: str | None = None) -> Path | None:
    """Instala los handlers en el logger raíz. Es idempotente."""

    settings = settings or AppSettings()
    resolved = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(resolved, int):
        resolved = logging.WARNING

    root = logging.getLogger()
    root.setLevel(resolved)
    for handler in list(root.handlers):
        if handler.get_name() and handler.get_name().startswith(_HANDLER_NAME):
            root.removeHandler(handler)
            handler.close()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
    )
    console_handler.set_name(f"{_HANDLER_NAME}.console")
    console_handler.setLevel(resolved)
    root.addHandler(console_handler)

    # httpx registra cada request en INFO
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))

    if settings.log_file is None:
        return None

    log_path = Path(settings.log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s"))
    file_handler.set_name(f"{_HANDLER_NAME}.file")
    file_handler.setLevel(resolved)
    root.addHandler(file_handler)
    return log_path
