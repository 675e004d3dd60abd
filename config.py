"""
config.py
---------
Configuración central del Signal PnL Tracker.

Incluye:
    ✔ Variables de entorno (.env)
    ✔ Paths absolutos
    ✔ Config de Telegram (Telethon + Bot)
    ✔ Config de precios (Bybit)
    ✔ Intervalos de los loops del scheduler
"""

import os

from dotenv import load_dotenv

# ============================================================
# Cargar archivo .env
# ============================================================

load_dotenv()


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


# ============================================================
# RUTAS DEL PROYECTO
# ============================================================

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

DB_PATH = os.getenv("DB_PATH", os.path.join(BASE_DIR, "data", "pnl_signals.db"))
LOG_DIR = os.getenv("LOG_DIR", os.path.join(BASE_DIR, "logs"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Mapping canal fuente → canal destino de resultados
PNL_MAPPING_PATH = os.getenv("PNL_MAPPING_PATH", os.path.join(BASE_DIR, "data", "pnl-mapping.json"))


# ============================================================
# TELEGRAM: API DE USUARIO (TELETHON)
# ============================================================

API_ID = _int("API_ID", 0)
API_HASH = os.getenv("API_HASH", "")
TELEGRAM_SESSION = os.getenv("TELEGRAM_SESSION", "pnl_tracker")


# ============================================================
# TELEGRAM: BOT
# ============================================================

TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")

# Único usuario autorizado para los comandos de administración
TELEGRAM_ADMIN_ID = _int("TELEGRAM_ADMIN_ID", 0)

# Canal de resultados por defecto (si el chat fuente no está mapeado)
PNL_RESULT_CHANNEL = os.getenv("PNL_RESULT_CHANNEL", "") or None


# ============================================================
# PRECIOS: BYBIT (API pública)
# ============================================================

BYBIT_ENDPOINT = os.getenv("BYBIT_ENDPOINT", "https://api.bybit.com")
BYBIT_CATEGORY = os.getenv("BYBIT_CATEGORY", "linear")
PRICE_TIMEOUT_SECONDS = _float("PRICE_TIMEOUT_SECONDS", 5.0)

# Pausa entre pares dentro de un mismo tick (rate limit)
PRICE_REQUEST_DELAY_SECONDS = _float("PRICE_REQUEST_DELAY_SECONDS", 0.2)

DEFAULT_QUOTE = os.getenv("DEFAULT_QUOTE", "USDT").upper()


# ============================================================
# LOOPS / TRACKER
# ============================================================

TICK_INTERVAL_SECONDS = _int("TICK_INTERVAL_SECONDS", 60)
BACKFILL_INTERVAL_SECONDS = _int("BACKFILL_INTERVAL_SECONDS", 300)
BACKFILL_LIMIT = _int("BACKFILL_LIMIT", 10)
DEDUPE_TTL_SECONDS = _int("DEDUPE_TTL_SECONDS", 24 * 60 * 60)


# ============================================================
# VALIDACIÓN RÁPIDA (para evitar errores en tiempo de ejecución)
# ============================================================

def validate_config() -> list:
    errors = []

    if API_ID == 0 or not API_HASH:
        errors.append("❌ TELEGRAM API_ID/API_HASH no configurados.")

    if not TELEGRAM_BOT_TOKEN:
        errors.append("❌ TELEGRAM_BOT_TOKEN no configurado.")

    if not TELEGRAM_ADMIN_ID:
        errors.append("⚠️ TELEGRAM_ADMIN_ID no configurado (comandos admin deshabilitados).")

    if not os.path.exists(PNL_MAPPING_PATH) and not PNL_RESULT_CHANNEL:
        errors.append(f"⚠️ Sin mapping en {PNL_MAPPING_PATH} ni PNL_RESULT_CHANNEL.")

    if TICK_INTERVAL_SECONDS <= 0:
        errors.append("❌ TICK_INTERVAL_SECONDS debe ser > 0.")

    return errors


# ============================================================
# EJECUCIÓN OPCIONAL (debug)
# ============================================================

if __name__ == "__main__":
    print("📘 Validando configuración...")
    problems = validate_config()
    print("\n".join(problems) if problems else "✔ Configuración OK.")
