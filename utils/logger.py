"""
utils/logger.py
----------------
Configuración central del sistema de logging.
Todos los módulos usan el logger configurado aquí.
"""

import logging
import os
from logging.handlers import RotatingFileHandler


# ============================================================
# 🔵 CONFIGURAR LOGGING GLOBAL
# ============================================================

def configure_logging(log_dir: str = "logs", level: str = "INFO"):
    """
    Configuración unificada del sistema de logs.
    Se invoca una vez desde main.py.
    """
    os.makedirs(log_dir, exist_ok=True)

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    # Evitar múltiples configuraciones si ya existe un handler
    root = logging.getLogger()
    if root.hasHandlers():
        root.handlers.clear()

    # -----------------------------
    # Consola (stream handler)
    # -----------------------------
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(log_format))

    # -----------------------------
    # Archivo con rotación
    # -----------------------------
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, "pnl_tracker.log"),
        maxBytes=5_000_000,  # 5 MB
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(log_format))

    # el nivel va en el root; los handlers dejan pasar todo lo que reciben
    logging.basicConfig(level=log_level, handlers=[console_handler, file_handler])

    logging.getLogger("telegram").setLevel(logging.WARNING)
    logging.getLogger("telethon").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    logging.info("📘 Logging configurado correctamente (archivo + consola).")
